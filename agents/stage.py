"""Stage definitions: what to ask the model and what shape to demand back."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from core.errors import StructuredOutputInvalid
from core.models import JDAnalysis, KeywordAnalysis, StageName
from core.schema import OutputSchema
from core.structured import StructuredGenerationClient

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class StageInputs:
    """Everything a stage prompt may draw on.

    Upstream outputs are only set in the sequential topology, and only when
    the upstream stage completed.
    """

    resume_text: str
    job_description: str
    jd_analysis: Optional[JDAnalysis] = None
    keyword_analysis: Optional[KeywordAnalysis] = None


@dataclass(frozen=True, slots=True)
class StageDefinition(Generic[M]):
    """Immutable per-stage metadata shared by every pipeline run.

    ``schema`` is checked against ``output_model`` at construction so a drift
    between the two fails at import rather than on a live request.
    """

    name: StageName
    schema: OutputSchema
    output_model: type[M]
    temperature: float
    build_prompt: Callable[[StageInputs], str]
    finalize: Optional[Callable[[M, StageInputs], M]] = None

    def __post_init__(self) -> None:
        self.schema.check_model(self.output_model)

    async def run(
        self,
        client: StructuredGenerationClient,
        inputs: StageInputs,
        *,
        req_id: str | None = None,
    ) -> M:
        prompt = self.build_prompt(inputs)
        logger.debug("stage.prompt name=%s chars=%d", self.name.value, len(prompt))
        extra = {"req_id": req_id} if req_id else {}
        data = await client.generate_structured(prompt, self.schema, self.temperature, **extra)
        try:
            output = self.output_model.model_validate(data)
        except ValidationError as e:
            raise StructuredOutputInvalid(f"{self.name.value} output failed validation: {e}") from e
        if self.finalize is not None:
            output = self.finalize(output, inputs)
        return output

