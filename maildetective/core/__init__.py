from maildetective.core.email_analyzer import analyze_email
from maildetective.core.url_analyzer import analyze_url
from maildetective.core.classifier import classify

__all__ = ["analyze_email", "analyze_url", "classify"]
