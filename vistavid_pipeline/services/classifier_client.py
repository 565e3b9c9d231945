"""
Client for the external unsafe-content image classifier.

The service is a hosted inference endpoint. It takes one base64-encoded image
per request and answers with a list of label/score pairs. While the model is
being loaded it answers with an error object instead, optionally carrying an
`estimated_time` in seconds; the client waits and retries the same frame.
"""
import base64
import time
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from loguru import logger

from ..config.moderation import (
    CLASSIFIER_DEFAULT_WAIT_SECONDS,
    CLASSIFIER_LOADING_MARKER,
    CLASSIFIER_MAX_ATTEMPTS,
    CLASSIFIER_TIMEOUT_SECONDS,
    UNSAFE_LABEL,
)
from ..domain.exceptions import (
    ClassifierException,
    ClassifierResponseException,
    ClassifierUnavailableException,
    RetriesExhaustedException,
)
from ..utils.retry import NotReady, call_with_retry

# Only this much of an unexpected response body goes into error messages.
_BODY_PREVIEW_CHARS = 300


class ClassifierClient:
    """
    Scores image frames for unsafe content.

    Args:
        url: The inference endpoint.
        api_key: Bearer token, or None for unauthenticated endpoints.
        unsafe_label: The label whose score is returned.
        max_attempts: Total attempts per frame while the model is loading.
        default_wait: Seconds to wait when the service suggests no delay.
        timeout: Per-request network timeout in seconds.
        session: A `requests.Session` (or compatible object). One is created
                 if omitted.
        sleep: Used between attempts; injectable for tests.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        unsafe_label: str = UNSAFE_LABEL,
        max_attempts: int = CLASSIFIER_MAX_ATTEMPTS,
        default_wait: float = CLASSIFIER_DEFAULT_WAIT_SECONDS,
        timeout: float = CLASSIFIER_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not url:
            raise ValueError("Classifier url is required")
        self.url = url
        self.unsafe_label = unsafe_label
        self.max_attempts = max_attempts
        self.default_wait = default_wait
        self.timeout = timeout
        self._sleep = sleep
        self._session = session or requests.Session()
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    def close(self) -> None:
        self._session.close()

    def score_frame(self, frame_path: Path) -> float:
        """
        Returns the unsafe-content score of one frame, in [0, 1].

        Raises:
            ClassifierUnavailableException: If the model was still loading on
                                            the last allowed attempt.
            ClassifierResponseException: If the service answered with anything
                                         other than scores or a loading notice.
            ClassifierException: On network errors.
        """
        payload = {"inputs": {"image": base64.b64encode(frame_path.read_bytes()).decode("ascii")}}
        attempt = 0

        def _attempt() -> float:
            nonlocal attempt
            attempt += 1
            logger.debug(
                f"Sending {frame_path.name} to classifier (attempt {attempt}/{self.max_attempts})"
            )
            return self._request(payload)

        try:
            score = call_with_retry(
                _attempt,
                max_attempts=self.max_attempts,
                default_delay=self.default_wait,
                description=f"Classifier for {frame_path.name}",
                sleep=self._sleep,
            )
        except RetriesExhaustedException as e:
            raise ClassifierUnavailableException(str(e)) from e

        logger.info(f"Frame {frame_path.name} - score: {score:.4f}")
        return score

    def _request(self, payload: dict) -> float:
        try:
            response = self._session.post(
                self.url, json=payload, headers=self._headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ClassifierException(f"Classifier request failed: {e}") from e

        body_preview = (response.text or "")[:_BODY_PREVIEW_CHARS]
        logger.trace(f"Classifier raw response ({response.status_code}): {body_preview}")
        try:
            result = response.json()
        except ValueError:
            raise ClassifierResponseException(
                f"Classifier returned non-JSON response (HTTP {response.status_code}): {body_preview}"
            )

        if isinstance(result, dict) and CLASSIFIER_LOADING_MARKER in str(result.get("error", "")):
            raise NotReady("model is loading", retry_after=self._estimated_time(result))

        if not response.ok:
            raise ClassifierResponseException(
                f"Classifier returned HTTP {response.status_code}: {body_preview}"
            )

        if isinstance(result, list):
            return self._extract_score(result)

        raise ClassifierResponseException(f"Unexpected classifier response format: {body_preview}")

    @staticmethod
    def _estimated_time(result: dict) -> Optional[float]:
        try:
            value = float(result.get("estimated_time"))
        except (TypeError, ValueError):
            return None
        return value if value >= 0 else None

    def _extract_score(self, result: list) -> float:
        for item in result:
            if isinstance(item, dict) and item.get("label") == self.unsafe_label:
                score: Any = item.get("score", 0.0)
                try:
                    return float(score)
                except (TypeError, ValueError):
                    raise ClassifierResponseException(
                        f"Non-numeric score for label '{self.unsafe_label}': {score!r}"
                    )
        return 0.0
