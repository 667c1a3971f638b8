"""Application detector.

Tries detection methods in the caller's order and returns the first
positive result. A failing method never aborts detection; it simply counts
as "not found" for that method.
"""

import logging
from collections.abc import Iterable, Mapping

from dotctl.core.platform import PlatformContext
from dotctl.detection.methods import HANDLERS, Handler
from dotctl.models.detection import DEFAULT_DETECTION_METHODS, DetectionMethod, DetectionResult

logger = logging.getLogger(__name__)


class Detector:
    """Determines presence, version and install path of applications.

    Attributes:
        _enabled: When False, every detection reports method="disabled".
        _handlers: Handler per detection method.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        handlers: Mapping[DetectionMethod, Handler] | None = None,
    ) -> None:
        self._enabled = enabled
        self._handlers = dict(HANDLERS if handlers is None else handlers)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def detect(
        self,
        application: str,
        methods: Iterable[DetectionMethod | str] | None,
        platform: PlatformContext,
    ) -> DetectionResult:
        """Detect an application.

        Args:
            application: Application name.
            methods: Ordered methods to try; None means the defaults
                (command, then file). Unknown method names are negative.
            platform: Platform to detect on.

        Returns:
            The first positive DetectionResult, DetectionResult.disabled()
            when detection is off, or DetectionResult.not_found().
        """
        if not self._enabled:
            return DetectionResult.disabled()

        for method in DEFAULT_DETECTION_METHODS if methods is None else methods:
            result = self._try(application, method, platform)
            if result.installed:
                logger.info(
                    "Detected %s via %s (version %s, path %s)",
                    application,
                    result.method,
                    result.version,
                    result.installation_path or "-",
                )
                return result

        logger.debug("Application %s not found", application)
        return DetectionResult.not_found()

    def _try(
        self,
        application: str,
        method: DetectionMethod | str,
        platform: PlatformContext,
    ) -> DetectionResult:
        try:
            tag = DetectionMethod(method)
        except ValueError:
            logger.warning("Unknown detection method %r for %s", method, application)
            return DetectionResult(installed=False, method="")

        handler = self._handlers.get(tag)
        if handler is None:
            logger.debug("No handler registered for %s", tag.value)
            return DetectionResult(installed=False, method="")

        try:
            return handler(application, platform)
        except Exception as e:
            logger.debug("Detection method %s failed for %s: %s", tag.value, application, e)
            return DetectionResult(installed=False, method="")
