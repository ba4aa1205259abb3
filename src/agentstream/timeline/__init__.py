"""Step/timeline model shared by every agent parser."""

from agentstream.timeline.log import Timeline
from agentstream.timeline.models import (
    AssistantEvent,
    ParsedMessage,
    StepStatus,
    ThinkingEvent,
    TimelineEntry,
    TimelineEvent,
    ToolEvent,
    Usage,
)

__all__ = [
    "AssistantEvent",
    "ParsedMessage",
    "StepStatus",
    "ThinkingEvent",
    "Timeline",
    "TimelineEntry",
    "TimelineEvent",
    "ToolEvent",
    "Usage",
]
