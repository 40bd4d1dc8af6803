"""Repair of free-text model output into parseable JSON.

The model is asked for a bare JSON object but routinely wraps it in code
fences, adds prose around it, leaves trailing commas, forgets to quote keys
or under-escapes LaTeX. Rather than one clever parser, ``recover`` applies a
fixed sequence of cheap regex-level stages, each a pure ``str -> str``
function, and tries ``json.loads`` before the first stage and after every
stage. It stops at the first text that parses to a JSON object, so a later,
more aggressive stage never touches a document an earlier stage already
fixed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# LaTeX command names the grader uses inside JSON strings. Several of them
# start with a letter that is also a JSON escape (\frac, \times, \beta,
# \right, \neq), so they must be recognised by name.
LATEX_COMMANDS: Tuple[str, ...] = (
	"frac", "dfrac", "tfrac", "binom", "sqrt", "cdot", "cdots", "ldots", "times", "div",
	"pm", "mp", "sum", "prod", "int", "lim", "infty", "log", "ln", "exp", "sin", "cos", "tan",
	"left", "right", "text", "mathrm", "mathbf", "mathbb", "operatorname", "overline", "underline",
	"le", "leq", "ge", "geq", "neq", "approx", "equiv", "to", "rightarrow", "Rightarrow",
	"Leftrightarrow", "implies", "iff", "in", "notin", "forall", "exists", "therefore",
	"alpha", "beta", "gamma", "delta", "epsilon", "varepsilon", "theta", "lambda", "mu", "nu",
	"pi", "rho", "sigma", "tau", "phi", "varphi", "omega", "Gamma", "Delta", "Theta", "Lambda",
	"Sigma", "Phi", "Omega", "quad", "qquad", "displaystyle", "nabla", "neg", "not",
)

_STRING_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"')
_PLACEHOLDERS = (
	re.compile(r"\.\.\.\s*and\s+so\s+on\s+for\s+each\s+step(?:\s+in\s+the\s+question)?", re.IGNORECASE),
	re.compile(r"\.\.\.\s*repeat\s+for\s+each\s+question", re.IGNORECASE),
)
_LATEX_COMMAND = re.compile(
	r"(?<!\\)\\(" + "|".join(sorted(LATEX_COMMANDS, key=len, reverse=True)) + r")(?![A-Za-z])"
)
# A lone backslash before anything that is not a JSON escape is always invalid
_INVALID_ESCAPE = re.compile(r'(?<!\\)\\(?=[^"\\/bfnrtu])')
_LITERAL_NEWLINE = re.compile(r"(?<!\\)\\n(?!(?:eq|abla|u|ot|eg)(?![A-Za-z]))")
_VALUE_END = re.compile(r"([}\]]|\d|true|false|null)(\s*)$")


class BoundaryNotFound(ValueError):
	"""Raised by ``extract_object`` when the text holds no ``{...}`` span."""


@dataclass(frozen=True)
class RepairStage:
	name: str
	transform: Callable[[str], str]


@dataclass(frozen=True)
class Recovery:
	text: str
	value: Optional[Dict[str, Any]]
	# Name of the stage whose output parsed ("direct" for untouched input)
	stage: Optional[str]

	@property
	def ok(self) -> bool:
		return self.value is not None


def _split_strings(text: str) -> List[Tuple[bool, str]]:
	"""Split text into (is_string_literal, chunk) pieces."""
	pieces: List[Tuple[bool, str]] = []
	pos = 0
	for match in _STRING_TOKEN.finditer(text):
		if match.start() > pos:
			pieces.append((False, text[pos:match.start()]))
		pieces.append((True, match.group(0)))
		pos = match.end()
	if pos < len(text):
		pieces.append((False, text[pos:]))
	return pieces


def _outside_strings(text: str, fn: Callable[[str], str]) -> str:
	return "".join(chunk if is_str else fn(chunk) for is_str, chunk in _split_strings(text))


def _inside_strings(text: str, fn: Callable[[str], str]) -> str:
	return "".join(fn(chunk) if is_str else chunk for is_str, chunk in _split_strings(text))


def _drop_trailing_commas(text: str) -> str:
	return _outside_strings(text, lambda s: re.sub(r",(\s*[}\]])", r"\1", s))


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def strip_fences(text: str) -> str:
	text = text.strip().lstrip("\ufeff").strip()
	text = re.sub(r"^```[A-Za-z]*\s*", "", text)
	text = re.sub(r"\s*```$", "", text)
	return text.replace("`", "").strip()


def extract_object(text: str) -> str:
	first = text.find("{")
	last = text.rfind("}")
	if first == -1 or last <= first:
		raise BoundaryNotFound("no JSON object boundaries in model output")
	return text[first : last + 1]


def repair_literals(text: str) -> str:
	text = re.sub(r"[\r\n]+", " ", text)
	text = _LITERAL_NEWLINE.sub(" ", text)
	text = re.sub(r'(?<!\\)\\"', '"', text)
	text = re.sub(r"\s+", " ", text)
	return _drop_trailing_commas(text).strip()


def _strip_placeholders(text: str) -> str:
	for pattern in _PLACEHOLDERS:
		text = pattern.sub("", text)
	return text


def _quote_bare_keys(text: str) -> str:
	return _outside_strings(
		text, lambda s: re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)", r'\1"\2"\3', s)
	)


def _insert_missing_commas(text: str) -> str:
	pieces = _split_strings(text)
	out: List[str] = []
	for i, (is_str, chunk) in enumerate(pieces):
		following = pieces[i + 1] if i + 1 < len(pieces) else None
		prev_is_str = i > 0 and pieces[i - 1][0]
		if is_str:
			if prev_is_str:
				out.append(",")
			out.append(chunk)
			continue
		chunk = re.sub(r"([}\]])(\s*)(?=[{\[])", r"\1,\2", chunk)
		if following is not None and following[0]:
			if prev_is_str and not chunk.strip():
				chunk = "," + chunk
			else:
				chunk = _VALUE_END.sub(r"\1,\2", chunk)
		out.append(chunk)
	return "".join(out)


def _collapse_commas(text: str) -> str:
	def fix(segment: str) -> str:
		segment = re.sub(r",(\s*,)+", ",", segment)
		return re.sub(r"([{\[]\s*),", r"\1", segment)
	return _outside_strings(text, fix)


def _close_brackets(text: str) -> str:
	stack: List[str] = []
	in_string = False
	escaped = False
	for ch in text:
		if in_string:
			if escaped:
				escaped = False
			elif ch == "\\":
				escaped = True
			elif ch == '"':
				in_string = False
			continue
		if ch == '"':
			in_string = True
		elif ch == "{":
			stack.append("}")
		elif ch == "[":
			stack.append("]")
		elif ch in "}]" and stack and stack[-1] == ch:
			stack.pop()
	if in_string:
		text += '"'
	if stack:
		text = re.sub(r",\s*$", "", text) + "".join(reversed(stack))
	return text


def escape_latex(text: str) -> str:
	"""Double single backslashes in front of LaTeX commands inside string values."""
	def fix(token: str) -> str:
		token = _LATEX_COMMAND.sub(r"\\\\\1", token)
		return _INVALID_ESCAPE.sub(r"\\\\", token)
	return _inside_strings(text, fix)


def repair_structure(text: str) -> str:
	text = _strip_placeholders(text)
	text = _quote_bare_keys(text)
	text = _insert_missing_commas(text)
	text = _collapse_commas(text)
	text = _drop_trailing_commas(text)
	return _close_brackets(text)


def repair_math_structure(text: str) -> str:
	return repair_structure(escape_latex(text))


GENERAL_STAGES: Tuple[RepairStage, ...] = (
	RepairStage("strip_fences", strip_fences),
	RepairStage("extract_object", extract_object),
	RepairStage("repair_literals", repair_literals),
	RepairStage("repair_structure", repair_structure),
)

# Worksheet grading output is full of LaTeX
MATH_STAGES: Tuple[RepairStage, ...] = GENERAL_STAGES[:3] + (
	RepairStage("repair_math_structure", repair_math_structure),
)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def try_parse(text: str) -> Optional[Dict[str, Any]]:
	try:
		value = json.loads(text)
	except (TypeError, ValueError, RecursionError):
		# RecursionError: nesting deeper than the decoder allows
		return None
	return value if isinstance(value, dict) else None


def recover(raw: Optional[str], stages: Tuple[RepairStage, ...] = GENERAL_STAGES) -> Recovery:
	text = raw or ""
	value = try_parse(text)
	if value is not None:
		return Recovery(text=text, value=value, stage="direct")
	for stage in stages:
		try:
			text = stage.transform(text)
		except BoundaryNotFound:
			logger.warning("Model output has no JSON object; giving up after %s", stage.name)
			return Recovery(text=text, value=None, stage=None)
		value = try_parse(text)
		if value is not None:
			logger.info("Model output parsed after stage %s", stage.name)
			return Recovery(text=text, value=value, stage=stage.name)
	logger.warning("Model output still unparseable after %d repair stages", len(stages))
	return Recovery(text=text, value=None, stage=None)


def normalize(raw: Optional[str], stages: Tuple[RepairStage, ...] = GENERAL_STAGES) -> str:
	"""Return the first repaired form of ``raw`` that parses, else the fully repaired text."""
	return recover(raw, stages).text
