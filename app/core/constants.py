"""
Static values shared across the analysis pipeline.
"""

from app.schemas.analysis import LayerDefinition, ReviewLayer

MAX_SCORE = 10
CHARS_PER_TOKEN_ESTIMATE = 4
MAX_TOKEN_LOG_ENTRIES = 50

# Order matters: personnel data is folded over layers in this sequence.
LAYER_DEFINITIONS: tuple[LayerDefinition, ...] = (
    LayerDefinition(
        id=ReviewLayer.STORY,
        title="Magic of Story/Script",
        short_title="Story",
        description="Core idea, narrative, themes, character arcs, originality.",
    ),
    LayerDefinition(
        id=ReviewLayer.CONCEPTUALIZATION,
        title="Magic of Conceptualization",
        short_title="Concept",
        description="Director's vision, editing, casting, overall presentation.",
    ),
    LayerDefinition(
        id=ReviewLayer.PERFORMANCE,
        title="Magic of Performance/Execution",
        short_title="Performance",
        description="Acting, music, cinematography, effects, choreography.",
    ),
)

__all__ = [
    "CHARS_PER_TOKEN_ESTIMATE",
    "LAYER_DEFINITIONS",
    "MAX_SCORE",
    "MAX_TOKEN_LOG_ENTRIES",
]
