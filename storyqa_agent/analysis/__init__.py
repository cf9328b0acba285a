from .story_analyzer import CLASSIFICATION_RULES, WORKFLOW_RULES, StoryAnalyzer

__all__ = ["StoryAnalyzer", "CLASSIFICATION_RULES", "WORKFLOW_RULES"]
