from __future__ import annotations

import asyncio
import base64
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum

from datachat.core.errors import AnalysisError, ErrorKind, GenerationError
from datachat.core.prompts import (
    FALLBACK_SUMMARY,
    GENERATION_MAX_TOKENS,
    SUMMARY_MAX_TOKENS,
    build_generation_prompt,
    build_summary_prompt,
)
from datachat.core.sanitize import sanitize_code
from datachat.core.schema import AnalysisResponse, ExecutionResult, FileDescriptor, GenerationContext, SchemaSummary
from datachat.core.script import ScriptAssembler
from datachat.core.settings import Settings, get_settings
from datachat.core.workspaces import WorkspaceManager
from datachat.domain import Workspace
from datachat.extractors.introspect import SchemaIntrospector, placeholder_summary
from datachat.infrastructure.llm import LLMClient, LLMError, get_llm_client
from datachat.infrastructure.sandbox import SandboxExecutor

logger = logging.getLogger(__name__)

FAILURE_SUMMARY = "Sorry, I encountered an error processing your request."
# Room above the output cap for the chart and anything else the script writes.
FILE_SIZE_HEADROOM_BYTES = 16 * 1024 * 1024


class PipelineStage(str, Enum):
    RECEIVED = "received"
    FILES_INTROSPECTED = "files_introspected"
    CODE_GENERATED = "code_generated"
    CODE_SANITIZED = "code_sanitized"
    SCRIPT_ASSEMBLED = "script_assembled"
    EXECUTED = "executed"
    SUMMARY_GENERATED = "summary_generated"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AnalysisRequest:
    user_request: str
    files: list[FileDescriptor]


@dataclass
class AnalysisOutcome:
    stage: PipelineStage = PipelineStage.RECEIVED
    stages: list[PipelineStage] = field(default_factory=lambda: [PipelineStage.RECEIVED])
    summary_text: str = ""
    summary_is_fallback: bool = False
    generated_code: str = ""
    schemas: list[SchemaSummary] = field(default_factory=list)
    execution: ExecutionResult | None = None
    failure_reason: str | None = None
    error_kind: ErrorKind | None = None
    workspace_id: str | None = None

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.stages.append(stage)

    def fail(self, kind: ErrorKind | None, reason: str) -> None:
        self.error_kind = kind
        self.failure_reason = reason
        self.summary_text = FAILURE_SUMMARY
        self.advance(PipelineStage.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.COMPLETED

    def to_response(self) -> AnalysisResponse:
        execution = self.execution
        if execution is None:
            return AnalysisResponse(
                summary_text=self.summary_text,
                generated_code=self.generated_code,
                error_text=self.failure_reason,
                error_kind=self.error_kind,
                schemas=list(self.schemas),
            )
        artifact = base64.b64encode(execution.artifact_bytes).decode("ascii") if execution.artifact_bytes else None
        return AnalysisResponse(
            summary_text=self.summary_text,
            generated_code=self.generated_code,
            artifact_base64=artifact,
            stdout_text=execution.stdout or None,
            error_text=execution.stderr if execution.error_kind else None,
            error_kind=execution.error_kind,
            output_truncated=execution.output_truncated,
            schemas=list(self.schemas),
        )


class AnalysisPipeline:
    """Drive one analysis request from introspection to summary."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        llm_client: LLMClient | None = None,
        introspector: SchemaIntrospector | None = None,
        assembler: ScriptAssembler | None = None,
        executor: SandboxExecutor | None = None,
        workspaces: WorkspaceManager | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._llm_client = llm_client
        self._introspector = introspector or SchemaIntrospector(
            python_executable=self._settings.python_executable,
            timeout=self._settings.introspection_timeout,
        )
        self._assembler = assembler or ScriptAssembler(
            cpu_limit_seconds=math.ceil(self._settings.execution_timeout) + 1,
            memory_limit_mb=self._settings.memory_limit_mb,
            max_file_bytes=self._settings.max_output_bytes + FILE_SIZE_HEADROOM_BYTES,
        )
        self._executor = executor or SandboxExecutor(
            python_executable=self._settings.python_executable,
            timeout=self._settings.execution_timeout,
            max_output_bytes=self._settings.max_output_bytes,
        )
        self._workspaces = workspaces or WorkspaceManager(self._settings.workspaces_root)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def llm_client(self) -> LLMClient:
        return self._llm_client or get_llm_client()

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    def _introspect(self, file: FileDescriptor) -> SchemaSummary:
        try:
            return self._introspector.summarize(file)
        except AnalysisError as exc:
            logger.warning("schema introspection degraded for %s: %s", file.name, exc)
            return placeholder_summary(file, str(exc))
        except Exception as exc:
            logger.exception("schema introspection crashed for %s", file.name)
            return placeholder_summary(file, f"could not read schema: {exc!r}")

    async def _introspect_all(self, files: list[FileDescriptor]) -> list[SchemaSummary]:
        return list(await asyncio.gather(*(asyncio.to_thread(self._introspect, file) for file in files)))

    async def _complete(self, system: str, user: str, *, max_tokens: int, timeout: float) -> str:
        return await asyncio.wait_for(
            asyncio.to_thread(self.llm_client.complete, system, user, max_tokens=max_tokens),
            timeout=timeout,
        )

    async def _generate_code(self, context: GenerationContext) -> str:
        system, user = build_generation_prompt(context)
        try:
            completion = await self._complete(
                system,
                user,
                max_tokens=GENERATION_MAX_TOKENS,
                timeout=self._settings.generation_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                f"code generation timed out after {self._settings.generation_timeout:g} seconds"
            ) from exc
        except LLMError as exc:
            raise GenerationError(f"code generation failed: {exc}") from exc
        except Exception as exc:
            logger.exception("completion client raised unexpectedly during code generation")
            raise GenerationError(f"code generation failed: {exc!r}") from exc
        if not isinstance(completion, str):
            raise GenerationError("code generation returned a non-text completion")
        if not completion or not completion.strip():
            raise GenerationError("code generation returned an empty completion")
        return completion

    async def _summarize(self, user_request: str) -> tuple[str, bool]:
        system, user = build_summary_prompt(user_request)
        try:
            text = await self._complete(
                system,
                user,
                max_tokens=SUMMARY_MAX_TOKENS,
                timeout=self._settings.summary_timeout,
            )
        except (asyncio.TimeoutError, LLMError) as exc:
            logger.info("summary generation failed, using fallback: %s", exc)
            return FALLBACK_SUMMARY, True
        except Exception:
            logger.exception("completion client raised unexpectedly during summary generation")
            return FALLBACK_SUMMARY, True
        if not isinstance(text, str) or not text.strip():
            return FALLBACK_SUMMARY, True
        return text.strip(), False

    async def _run_stages(self, request: AnalysisRequest, workspace: Workspace, outcome: AnalysisOutcome) -> None:
        schemas = await self._introspect_all(request.files)
        outcome.schemas = schemas
        outcome.advance(PipelineStage.FILES_INTROSPECTED)

        context = GenerationContext(
            user_request=request.user_request,
            files=tuple(zip(request.files, schemas)),
        )
        completion = await self._generate_code(context)
        outcome.advance(PipelineStage.CODE_GENERATED)

        code = sanitize_code(completion)
        if not code:
            raise GenerationError("code generation returned no code")
        outcome.generated_code = code
        outcome.advance(PipelineStage.CODE_SANITIZED)

        script = self._assembler.assemble(context, code, workspace)
        outcome.advance(PipelineStage.SCRIPT_ASSEMBLED)

        outcome.execution = await asyncio.to_thread(self._executor.execute, script, workspace)
        outcome.advance(PipelineStage.EXECUTED)

        outcome.summary_text, outcome.summary_is_fallback = await self._summarize(request.user_request)
        outcome.advance(PipelineStage.SUMMARY_GENERATED)
        outcome.advance(PipelineStage.COMPLETED)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def run(self, request: AnalysisRequest) -> AnalysisOutcome:
        if not request.user_request or not request.user_request.strip():
            raise ValueError("user request text is required")
        if not request.files:
            raise ValueError("at least one file is required")

        outcome = AnalysisOutcome()
        started = time.monotonic()
        try:
            with self._workspaces.scope() as workspace:
                outcome.workspace_id = workspace.id
                await self._run_stages(request, workspace, outcome)
        except AnalysisError as exc:
            logger.warning("analysis failed at %s: %s", outcome.stage.value, exc)
            outcome.fail(exc.kind, str(exc))
        logger.info(
            "analysis %s finished as %s in %.2fs",
            outcome.workspace_id,
            outcome.stage.value,
            time.monotonic() - started,
        )
        return outcome


_pipeline: AnalysisPipeline | None = None


def get_analysis_pipeline() -> AnalysisPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = AnalysisPipeline()
    return _pipeline


def reset_analysis_pipeline() -> None:
    """Drop the process pipeline so the next call re-reads settings (used in tests)."""

    global _pipeline
    _pipeline = None
