from dangit.models.feedback import FeatureSuggestion, FeatureVote, FeedbackEntry
from dangit.models.saved_item import SavedItem

__all__ = ["SavedItem", "FeedbackEntry", "FeatureSuggestion", "FeatureVote"]
