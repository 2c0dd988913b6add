""" Agents package initialization."""

from .ats_scoring import SCORING  # noqa: F401
from .cover_letter_agent import COVER_LETTER, STYLES, CoverLetterAgent  # noqa: F401
from .jd_analysis import JD_ANALYSIS  # noqa: F401
from .keyword_analysis import KEYWORD_ANALYSIS  # noqa: F401
from .resume_chat import ResumeChatAgent  # noqa: F401
from .resume_optimizer import OPTIMISER  # noqa: F401
from .stage import StageDefinition, StageInputs  # noqa: F401
