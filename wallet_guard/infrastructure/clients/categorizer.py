"""Categorizer API HTTP client for best-effort category suggestions"""

import httpx
from typing import Optional
from wallet_guard.domain.models import CategorySuggestion
from wallet_guard.domain.exceptions import CategorizerError
from wallet_guard.config import settings


class CategorizerClient:
    """Client for the external transaction categorizer"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.categorizer_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def suggest(self, description: str, merchant: str | None, amount_cents: int) -> Optional[CategorySuggestion]:
        """
        Ask the categorizer for a label.

        Returns None when the categorizer is not configured or has no opinion.

        Raises:
            CategorizerError: On timeout, HTTP errors, or invalid response
        """
        if not self.enabled:
            return None

        with httpx.Client(timeout=self.timeout) as client:
            try:
                response = client.post(
                    f"{self.base_url}/categorize",
                    json={
                        "description": description,
                        "merchant": merchant,
                        "amount_cents": amount_cents,
                    },
                )
                response.raise_for_status()
                data = response.json()

                if not data:
                    return None
                if not isinstance(data, dict):
                    raise CategorizerError(f"Invalid categorizer response: expected an object, got {type(data).__name__}")
                if not data.get("category"):
                    return None
                return CategorySuggestion(
                    category=str(data["category"]),
                    confidence=float(data["confidence"]),
                )

            except httpx.TimeoutException as e:
                raise CategorizerError(f"Categorizer timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise CategorizerError(f"Categorizer error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise CategorizerError(f"Categorizer unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise CategorizerError(f"Invalid categorizer response: {e}") from e
