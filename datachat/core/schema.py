from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from datachat.core.errors import ErrorKind
from datachat.extractors.detect import FormatTag, detect_format


class FileDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    storage_path: Path
    size_bytes: int = 0
    format_tag: FormatTag = "unknown"

    @classmethod
    def from_path(cls, name: str, path: str | Path) -> "FileDescriptor":
        storage_path = Path(path)
        try:
            size = storage_path.stat().st_size
        except OSError:
            size = 0
        # The declared name wins over the storage suffix when it carries one.
        tag = detect_format(name)
        if tag == "unknown":
            tag = detect_format(storage_path)
        return cls(name=name, storage_path=storage_path, size_bytes=size, format_tag=tag)


class SchemaSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    format_tag: FormatTag
    row_count_estimate: int | None = None
    column_names: tuple[str, ...] = ()
    dtype_map: dict[str, str] | None = None
    preview_text: str = ""
    fallback_reason: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    def render(self) -> str:
        """Describe the dataset for the code generator."""

        if self.fallback_reason is not None:
            lines = [f"Schema unavailable ({self.format_tag} file): {self.fallback_reason}"]
            if self.preview_text:
                lines.append(f"Preview:\n{self.preview_text}")
            return "\n".join(lines)

        lines: list[str] = []
        if self.format_tag == "csv":
            lines.append(f"CSV file with approximately {self.row_count_estimate or 0} rows.")
        elif self.format_tag == "excel":
            lines.append(
                f"Excel file with {self.row_count_estimate or 0} rows and {len(self.column_names)} columns."
            )
        elif self.format_tag == "json":
            if self.row_count_estimate is not None:
                lines.append(f"JSON array with {self.row_count_estimate} items.")
            else:
                lines.append("JSON document.")
        else:
            lines.append("File of unrecognised format.")

        if self.column_names:
            lines.append(f"Columns: {', '.join(self.column_names)}")
        if self.dtype_map:
            lines.append("Data types: " + ", ".join(f"{key}: {value}" for key, value in self.dtype_map.items()))
        if self.preview_text:
            lines.append(f"Preview:\n{self.preview_text}")
        return "\n".join(lines)


class GenerationContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_request: str
    files: tuple[tuple[FileDescriptor, SchemaSummary], ...]

    @property
    def descriptors(self) -> list[FileDescriptor]:
        return [descriptor for descriptor, _ in self.files]


class ExecutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""
    artifact_bytes: bytes | None = None
    error_kind: ErrorKind | None = None
    exit_code: int | None = None
    output_truncated: bool = False

    @property
    def has_artifact(self) -> bool:
        return bool(self.artifact_bytes)


class AnalysisResponse(BaseModel):
    """Payload returned by the analysis endpoint."""

    summary_text: str
    generated_code: str = ""
    artifact_base64: str | None = None
    stdout_text: str | None = None
    error_text: str | None = None
    error_kind: ErrorKind | None = None
    output_truncated: bool = False
    schemas: list[SchemaSummary] = Field(default_factory=list)
