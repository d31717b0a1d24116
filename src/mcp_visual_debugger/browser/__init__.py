"""Playwright browser session, screenshot capture and the inspector UI driver."""

from .capture import CaptureOptions, ScreenshotTool, capture
from .inspector_driver import InspectorSelectors, InspectorUIDriver
from .session import BrowserSession

__all__ = [
    'BrowserSession',
    'CaptureOptions',
    'ScreenshotTool',
    'capture',
    'InspectorSelectors',
    'InspectorUIDriver',
]
