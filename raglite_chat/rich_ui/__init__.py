"""Rich UI components for raglite_chat."""
from .renderer import ChatRenderer, format_metrics, visible_messages

__all__ = ['ChatRenderer', 'format_metrics', 'visible_messages']
