"""Commit message generation through a chat-completions API.

The generator is constructed with its HTTP client and an ApiKeyPool, so
nothing is read from the environment or cached at module level.
"""

import asyncio
import itertools
import logging
import random

import httpx

from phantomit_core.config import DEFAULT_MODEL
from phantomit_core.errors import MessageGenerationError

logger = logging.getLogger(__name__)

API_URL = "https://api.groq.com/openai/v1/chat/completions"

MAX_DIFF_CHARS = 6000
TRUNCATION_MARKER = "\n...(truncated)"

EMPTY_DIFF_MESSAGE = "chore: minor updates"
EMPTY_RESPONSE_MESSAGE = "chore: update code"

MOCK_MESSAGES = (
    "feat(auth): add JWT token validation middleware",
    "fix(api): resolve null pointer in user fetch handler",
    "refactor(db): simplify PostgreSQL connection pooling logic",
    "chore(deps): update typescript and eslint to latest versions",
    "feat(ui): implement responsive navbar with mobile drawer",
    "fix(config): correct env variable parsing for production build",
    "perf(query): optimize slow JOIN on orders table with index",
    "docs(readme): update installation and usage instructions",
)

SYSTEM_PROMPT = """\
You are a Git commit message generator.
Your job is to analyze a code diff and produce a single, professional commit message.

Rules:
- Use conventional commits format: type(scope): description
- Types: feat, fix, refactor, chore, docs, style, test, perf
- Keep it between 10-20 words
- Be specific and descriptive, not vague
- No period at the end
- Output ONLY the commit message, nothing else: no explanation, no quotes"""

MISSING_KEY_HELP = """\
No GROQ API key found.
Add at least one to your .env file:

GROQ_API_KEY=your_key

Or add multiple for rotation:
GROQ_API_KEY_1=key_one
GROQ_API_KEY_2=key_two

Get a free key at: https://console.groq.com"""


def truncate_diff(diff: str, limit: int = MAX_DIFF_CHARS) -> str:
    """Cut a diff to ``limit`` characters, appending a truncation marker."""
    if len(diff) <= limit:
        return diff
    return diff[:limit] + TRUNCATION_MARKER


class ApiKeyPool:
    """Deduplicated set of API keys with a selection policy.

    Policies:
        random: uniform choice on every call
        round-robin: cycle through keys in their configured order
    """

    def __init__(self, keys, policy: str = "random", rng: random.Random | None = None):
        self.keys: tuple[str, ...] = tuple(dict.fromkeys(k for k in keys if k))
        if policy not in ("random", "round-robin"):
            raise ValueError(f"Unknown key policy: {policy}")
        self.policy = policy
        self._rng = rng or random.Random()
        self._cycle = itertools.cycle(self.keys) if self.keys else None

    def __len__(self) -> int:
        return len(self.keys)

    def select(self) -> str:
        """Pick the key for the next request.

        Raises:
            MessageGenerationError: If the pool is empty
        """
        if not self.keys:
            raise MessageGenerationError(MISSING_KEY_HELP)
        if self.policy == "round-robin":
            return next(self._cycle)
        return self._rng.choice(self.keys)


class MessageGenerator:
    """Drafts commit messages from diffs."""

    def __init__(
        self,
        keys: ApiKeyPool,
        client: httpx.AsyncClient | None = None,
        model: str = DEFAULT_MODEL,
        mock_delay: float = 0.8,
        api_url: str = API_URL,
        rng: random.Random | None = None,
    ):
        """Initialize generator.

        Args:
            keys: Pool of API keys
            client: HTTP client, owned by the generator from here on
            model: Chat model name
            mock_delay: Simulated latency of mock mode, in seconds
            api_url: Chat-completions endpoint
            rng: Random source for mock messages
        """
        self.keys = keys
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self.model = model
        self.mock_delay = mock_delay
        self.api_url = api_url
        self._rng = rng or random.Random()

    async def generate(self, diff: str, use_mock: bool = False) -> str:
        """Generate a commit message for a diff.

        Args:
            diff: Diff text
            use_mock: Return a canned message after a simulated delay, without network access

        Returns:
            The commit message

        Raises:
            MessageGenerationError: If no key is configured or the request fails
        """
        if use_mock:
            await asyncio.sleep(self.mock_delay)
            return self._rng.choice(MOCK_MESSAGES)

        if not diff.strip():
            return EMPTY_DIFF_MESSAGE

        payload = {
            "model": self.model,
            "max_tokens": 60,
            "temperature": 0.4,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Generate a commit message for this diff:\n\n{truncate_diff(diff)}"},
            ],
        }
        headers = {"Authorization": f"Bearer {self.keys.select()}"}

        try:
            response = await self.client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise MessageGenerationError(
                f"Message service returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise MessageGenerationError(f"Message service request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            content = ""
        message = content.strip()
        if not message:
            logger.warning("Message service returned an empty message")
            return EMPTY_RESPONSE_MESSAGE
        return message

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
