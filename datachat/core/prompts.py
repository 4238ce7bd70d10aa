from __future__ import annotations

from datachat.core.schema import GenerationContext
from datachat.core.script import binding_names

GENERATION_MAX_TOKENS = 2000
SUMMARY_MAX_TOKENS = 200

SUMMARY_SYSTEM_PROMPT = "You are a helpful data analysis assistant. Provide clear, concise explanations."
FALLBACK_SUMMARY = "Analysis completed successfully."

GENERATION_RULES = """\
You are a data analysis assistant. Your job is to generate Python code that analyzes data files and creates visualizations.

Rules:
1. Use pandas for all data loading and manipulation (pd.read_csv, pd.read_excel or pd.read_json).
2. Use matplotlib or seaborn for visualizations.
3. Choose an appropriate plot type (histogram, scatter, line, bar, ...) for the request.
4. Always label axes and include titles and legends on every plot.
5. Print any textual results with print().
6. Import every library you use explicitly at the top of the code.
7. Return ONLY the Python code, with no explanations or markdown formatting.
8. Do not call plt.show() and do not save figures yourself; the current figure is captured automatically.
"""


def describe_bindings(context: GenerationContext) -> str:
    descriptors = context.descriptors
    names = binding_names(len(descriptors))
    if len(descriptors) == 1:
        path_name, frame_name = names[0]
        return (
            f"The file path is available in the variable '{path_name}' and the data is already "
            f"loaded into the pandas DataFrame '{frame_name}'."
        )
    lines = ["The uploaded files are already loaded, in upload order:"]
    for descriptor, (path_name, frame_name) in zip(descriptors, names):
        lines.append(f"- {descriptor.name}: DataFrame '{frame_name}', path in '{path_name}'")
    lines.append("The lists 'dfs' and 'file_paths' hold the same DataFrames and paths in that order.")
    return "\n".join(lines)


def build_generation_prompt(context: GenerationContext) -> tuple[str, str]:
    """Return the ``(system, user)`` messages for the code-generation call."""

    sections = [GENERATION_RULES, describe_bindings(context), ""]
    for index, (descriptor, summary) in enumerate(context.files, start=1):
        sections.append(f"File {index}: {descriptor.name}")
        sections.append("File schema/preview:")
        sections.append(summary.render())
        sections.append("")
    sections.append(f"Generate Python code that will: {context.user_request}")
    return "\n".join(sections), context.user_request


def build_summary_prompt(user_request: str) -> tuple[str, str]:
    user = (
        f'Based on the user\'s request "{user_request}" and the analysis performed, provide a brief, '
        "clear explanation of what was done. Keep it concise (2-3 sentences)."
    )
    return SUMMARY_SYSTEM_PROMPT, user
