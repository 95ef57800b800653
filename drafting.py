"""
Project description drafting through the Gemini generateContent API.

Each attempt is one POST. Transport errors, non-2xx responses and responses
without candidate text all count as a failed attempt and are retried with
exponential backoff until the policy's attempt ceiling is reached.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional technical writer for a developer's portfolio. Your task is to "
    "generate a concise, engaging, and professional 3-4 sentence description for a technical "
    "project. The description must be in plain text, and not include any headings or bullet "
    "points. Focus on highlighting the core function and the technologies used."
)

VALIDATION_ERROR = 'Please fill in the Title and Technologies fields first.'
EXHAUSTED_ERROR = 'Failed to generate description after multiple attempts.'
NOT_CONFIGURED_ERROR = 'Description drafting is not configured.'
BUSY_ERROR = 'A description is already being generated.'


class DraftingError(Exception):
    """A drafting attempt (or the whole draft) failed."""


class DraftValidationError(DraftingError):
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries; the delay doubles after each failed attempt."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (2 ** (attempt - 1))

    def run(self, func, retry_on=(DraftingError,)):
        """Call func(attempt) until it returns; re-raise the last error once attempts run out."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(attempt)
            except retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning('Attempt %d/%d failed (%s); retrying in %.1fs',
                               attempt, self.max_attempts, e, delay)
                self.sleep(delay)


@dataclass
class DraftResult:
    text: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.text is not None


class DraftingClient:
    """
    Client for the Gemini generateContent endpoint.

    - api_key: sent as the `key` query parameter
    - model: e.g. "gemini-2.5-flash-preview-09-2025"
    - base_url: e.g. "https://generativelanguage.googleapis.com/v1beta"
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = 'https://generativelanguage.googleapis.com/v1beta',
        timeout: int = 30,
        policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self._lock = threading.Lock()
        self._in_flight = set()

    @property
    def url(self) -> str:
        return f'{self.base_url}/models/{self.model}:generateContent'

    @staticmethod
    def build_payload(title: str, technologies: str) -> Dict[str, Any]:
        user_query = (
            f'Generate a description for a project titled: "{title}". '
            f'Key Technologies used: {technologies}.'
        )
        return {
            'contents': [{'parts': [{'text': user_query}]}],
            'systemInstruction': {'parts': [{'text': SYSTEM_PROMPT}]},
        }

    @staticmethod
    def extract_text(data: Dict[str, Any]) -> Optional[str]:
        try:
            text = data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(text, str) or not text.strip():
            return None
        return text.strip()

    def _attempt(self, payload: Dict[str, Any]) -> str:
        try:
            resp = self.session.post(
                self.url,
                params={'key': self.api_key},
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DraftingError(f'Error contacting drafting API: {e}') from e

        if not resp.ok:
            raise DraftingError(f'API call failed with status: {resp.status_code}')

        try:
            data = resp.json()
        except ValueError as e:
            raise DraftingError(f'Invalid JSON from drafting API: {e}') from e

        text = self.extract_text(data)
        if text is None:
            raise DraftingError('Received empty content from the API.')
        return text

    def _generate(self, title: str, technologies: str, attempts: list) -> str:
        title = (title or '').strip()
        technologies = (technologies or '').strip()
        if not title or not technologies:
            raise DraftValidationError(VALIDATION_ERROR)
        if not self.api_key:
            raise DraftingError(NOT_CONFIGURED_ERROR)

        payload = self.build_payload(title, technologies)

        def attempt(number):
            attempts.append(number)
            return self._attempt(payload)

        return self.policy.run(attempt)

    def generate(self, title: str, technologies: str) -> str:
        """Return the drafted description or raise DraftingError."""
        return self._generate(title, technologies, [])

    def draft(self, title: str, technologies: str, key: Optional[str] = None) -> DraftResult:
        """generate() for the UI: never raises, one draft in flight per key."""
        if not (title or '').strip() or not (technologies or '').strip():
            return DraftResult(error=VALIDATION_ERROR)

        with self._lock:
            if key in self._in_flight:
                return DraftResult(error=BUSY_ERROR)
            self._in_flight.add(key)

        attempts = []
        try:
            text = self._generate(title, technologies, attempts)
        except DraftingError as e:
            if not attempts:
                return DraftResult(error=str(e))
            logger.error('Drafting failed for %r after %d attempts: %s', title, len(attempts), e)
            return DraftResult(error=EXHAUSTED_ERROR, attempts=len(attempts))
        finally:
            with self._lock:
                self._in_flight.discard(key)
        return DraftResult(text=text, attempts=len(attempts))
