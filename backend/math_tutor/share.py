from __future__ import annotations
import base64
import json
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

from .schemas import SolutionResponse, SolveInput

# Characters encodeURIComponent leaves alone, so links match the ones the web UI builds
_URI_COMPONENT_SAFE = "-_.!~*'()"

SOCIAL_SHARE_TEMPLATES: Dict[str, str] = {
	"twitter": "https://twitter.com/intent/tweet?url={url}&text={text}",
	"facebook": "https://www.facebook.com/sharer/sharer.php?u={url}",
	"linkedin": "https://www.linkedin.com/sharing/share-offsite/?url={url}",
}


def _component(value: str) -> str:
	return quote(value, safe=_URI_COMPONENT_SAFE)


def encode_share_data(problem: str, solution: SolutionResponse, language: str) -> str:
	data = {
		"problem": problem,
		"solution": solution.model_dump(by_alias=True),
		"language": language,
	}
	raw = json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
	return _component(base64.b64encode(raw).decode("ascii"))


def decode_share_data(token: str) -> Dict[str, Any]:
	"""Inverse of ``encode_share_data``; raises ``ValueError`` on a damaged token."""
	try:
		raw = base64.b64decode(unquote(token), validate=True)
		data = json.loads(raw.decode("utf-8"))
	except (ValueError, UnicodeDecodeError) as err:
		raise ValueError(f"invalid share data: {err}") from err
	if not isinstance(data, dict) or not isinstance(data.get("problem"), str):
		raise ValueError("invalid share data: missing problem")
	data["solution"] = SolutionResponse.model_validate(data.get("solution"))
	return data


def build_share_url(origin: str, path: str, problem: Optional[SolveInput], solution: SolutionResponse, language: str) -> Optional[str]:
	# Image problems are too large for a URL fragment
	if not isinstance(problem, str):
		return None
	return f"{origin}{path}#data={encode_share_data(problem, solution, language)}"


def social_share_url(platform: str, url: str, title: str) -> str:
	template = SOCIAL_SHARE_TEMPLATES.get(platform)
	if template is None:
		raise ValueError(f"unsupported platform: {platform}")
	text = f"Check out this math problem solution: {title}"
	return template.format(url=_component(url), text=_component(text))
