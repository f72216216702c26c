"""PR content generator -- asks the configured LLM for a title and description."""

import json
import logging
import re

import httpx

from pushpilot.clients import llm_client
from pushpilot.config import Settings, resolve_llm_provider
from pushpilot.errors import GenerationError
from pushpilot.models import PRContent, RepoInfo

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 256

_CODEBLOCK_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)

SYSTEM_PROMPT = """\
You write GitHub pull requests for code that was just pushed.
Reply with a single JSON object and nothing else:
{"title": "<concise imperative title, under 72 characters>",
 "description": "<markdown body: a short summary, then a bullet list of notable changes>"}
If contributing guidelines are provided, follow their conventions for \
titles and descriptions. Never invent changes that the context does not show."""


def _strip_codeblock(text: str) -> str:
    """Remove an optional ```json ... ``` wrapper and any prose around the object."""
    text = text.strip()
    m = _CODEBLOCK_RE.match(text)
    if m:
        return m.group(1).strip()
    if text.startswith("{"):
        return text
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


def build_prompt(repo_info: RepoInfo, guide_max_chars: int = 4000) -> str:
    """Render the user message describing the push."""
    lines = [f"Branch: {repo_info.branch_name}"]
    if repo_info.commit_message:
        lines += ["", "Commit message:", repo_info.commit_message.strip()]
    if repo_info.changes:
        lines += ["", "Changes:"]
        for change in repo_info.changes.values():
            lines.append(f"- {change.path} ({change.status}, +{change.additions}/-{change.deletions})")
            for note in change.notes:
                lines.append(f"  {note}")
    if repo_info.contributing_guide:
        guide = repo_info.contributing_guide.strip()
        if len(guide) > guide_max_chars:
            guide = guide[:guide_max_chars] + "\n[...truncated]"
        lines += ["", "Contributing guidelines:", guide]
    return "\n".join(lines)


def parse_content(text: str) -> PRContent:
    """Turn the model's reply into :class:`PRContent`.

    Raises:
        GenerationError: not JSON, not an object, or a blank field.
    """
    try:
        data = json.loads(_strip_codeblock(text))
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Model reply is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GenerationError("Model reply is not a JSON object")

    title = str(data.get("title") or "").strip()
    description = str(data.get("description") or "").strip()
    if not title or not description:
        raise GenerationError("Model reply is missing a title or description")
    title = " ".join(title.splitlines())
    if len(title) > MAX_TITLE_CHARS:
        title = title[: MAX_TITLE_CHARS - 3].rstrip() + "..."
    return PRContent(title=title, description=description)


class PRGenerator:
    """:class:`~pushpilot.interfaces.ContentGenerator` backed by ``llm_client``."""

    def __init__(self, cfg: Settings) -> None:
        self.provider = resolve_llm_provider(cfg)
        if self.provider == "openai":
            self.api_key, self.model = cfg.OPENAI_API_KEY, cfg.OPENAI_MODEL
        else:
            self.api_key, self.model = cfg.ANTHROPIC_API_KEY, cfg.ANTHROPIC_MODEL
        self.max_tokens = cfg.LLM_MAX_TOKENS
        self.guide_max_chars = cfg.CONTRIBUTING_GUIDE_MAX_CHARS

    async def generate(self, repo_info: RepoInfo) -> PRContent:
        prompt = build_prompt(repo_info, self.guide_max_chars)
        try:
            result = await llm_client.chat(
                api_key=self.api_key,
                model=self.model,
                system_prompt=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                provider=self.provider,
            )
        except (ValueError, httpx.HTTPError) as exc:
            raise GenerationError(f"{self.provider} request failed: {exc}") from exc

        usage = result.get("usage", {})
        logger.debug(
            "LLM usage: %d in / %d out (%s)",
            usage.get("input_tokens", 0), usage.get("output_tokens", 0), self.model,
        )
        return parse_content(result["text"])
