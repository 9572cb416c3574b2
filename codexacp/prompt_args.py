"""Prompt argument parsing for slash commands and custom prompt expansion."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence

_PROMPT_ARG_RE = re.compile(r"\$[A-Z][A-Z0-9_]*")
_ARGUMENTS = "ARGUMENTS"


@dataclass
class CustomPrompt:
    """A saved prompt template that can be invoked as `/prompts:name`."""

    name: str
    path: Path
    content: str
    description: Optional[str] = None
    argument_hint: Optional[str] = None


class PromptArgsError(Exception):
    """A `key=value` token could not be parsed."""

    MISSING_ASSIGNMENT = "missing_assignment"
    MISSING_KEY = "missing_key"

    def __init__(self, kind: str, token: str) -> None:
        if kind not in (self.MISSING_ASSIGNMENT, self.MISSING_KEY):
            raise ValueError(f"unknown prompt argument error kind: {kind!r}")
        super().__init__(token)
        self.kind = kind
        self.token = token

    def describe(self, command: str) -> str:
        """Return a user-facing explanation for the given command."""
        if self.kind == self.MISSING_ASSIGNMENT:
            return (
                f"Could not parse {command}: expected key=value but found "
                f"'{self.token}'. Wrap values in double quotes if they contain spaces."
            )
        return f"Could not parse {command}: expected a name before '=' in '{self.token}'."


class PromptExpansionError(Exception):
    """A custom prompt could not be expanded from the supplied arguments."""

    def __init__(
        self,
        command: str,
        *,
        error: Optional[PromptArgsError] = None,
        missing: Optional[Sequence[str]] = None,
    ) -> None:
        if (error is None) == (missing is None):
            raise ValueError("exactly one of error or missing must be given")
        self.command = command
        self.error = error
        self.missing = list(missing) if missing is not None else None
        super().__init__(self.user_message())

    def user_message(self) -> str:
        """Return the message to show to the user."""
        if self.error is not None:
            return self.error.describe(self.command)
        listed = ", ".join(self.missing or [])
        return (
            f"Missing required args for {self.command}: {listed}. "
            "Provide as key=value (quote values with spaces)."
        )


def _shell_words(text: str) -> Iterator[str]:
    """Split text with shell rules, stopping quietly at a malformed tail."""
    lexer = shlex.shlex(text, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    while True:
        try:
            token = lexer.get_token()
        except ValueError:
            return
        if token is None or token == lexer.eof:
            return
        yield token


def parse_slash_name(line: str) -> Optional[tuple[str, str]]:
    """Split `/name rest` into `(name, rest)`, or return None if not a command."""
    if not line.startswith("/"):
        return None
    stripped = line[1:]
    name_end = next(
        (idx for idx, ch in enumerate(stripped) if ch.isspace()), len(stripped)
    )
    name = stripped[:name_end]
    if not name:
        return None
    return name, stripped[name_end:].lstrip()


def _is_escaped(content: str, start: int) -> bool:
    return start > 0 and content[start - 1] == "$"


def prompt_argument_names(content: str) -> list[str]:
    """Return unique `$NAME` placeholders in first-seen order, without the `$`."""
    names: list[str] = []
    seen: set[str] = set()
    for match in _PROMPT_ARG_RE.finditer(content):
        if _is_escaped(content, match.start()):
            continue
        name = match.group(0)[1:]
        if name == _ARGUMENTS or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


def parse_prompt_inputs(rest: str) -> dict[str, str]:
    """Parse shell-quoted `key=value` tokens into a mapping."""
    inputs: dict[str, str] = {}
    if not rest.strip():
        return inputs
    for token in _shell_words(rest):
        key, sep, value = token.partition("=")
        if not sep:
            raise PromptArgsError(PromptArgsError.MISSING_ASSIGNMENT, token)
        if not key:
            raise PromptArgsError(PromptArgsError.MISSING_KEY, token)
        inputs[key] = value
    return inputs


def expand_custom_prompt(
    name: str, rest: str, custom_prompts: Sequence[CustomPrompt]
) -> Optional[str]:
    """Expand the prompt called `name` with the arguments in `rest`.

    Returns None when no such prompt exists and raises PromptExpansionError
    when the arguments do not fit the prompt.
    """
    prompt = next((p for p in custom_prompts if p.name == name), None)
    if prompt is None:
        return None

    command = f"/{name}"
    required = prompt_argument_names(prompt.content)
    if required:
        try:
            inputs = parse_prompt_inputs(rest)
        except PromptArgsError as error:
            raise PromptExpansionError(command, error=error) from error
        missing = [key for key in required if key not in inputs]
        if missing:
            raise PromptExpansionError(command, missing=missing)

        content = prompt.content

        def substitute(match: re.Match[str]) -> str:
            whole = match.group(0)
            if _is_escaped(content, match.start()):
                return whole
            return inputs.get(whole[1:], whole)

        return _PROMPT_ARG_RE.sub(substitute, content)

    return expand_numeric_placeholders(prompt.content, list(_shell_words(rest)))


def expand_numeric_placeholders(content: str, args: Sequence[str]) -> str:
    """Expand `$1`..`$9` and `$ARGUMENTS` in content; `$$` stays literal."""
    parts: list[str] = []
    pos = 0
    joined: Optional[str] = None
    while True:
        dollar = content.find("$", pos)
        if dollar < 0:
            break
        parts.append(content[pos:dollar])
        following = content[dollar + 1 : dollar + 2]
        if following == "$":
            parts.append("$$")
            pos = dollar + 2
            continue
        if following and "1" <= following <= "9":
            index = ord(following) - ord("1")
            if index < len(args):
                parts.append(args[index])
            pos = dollar + 2
            continue
        if content.startswith(_ARGUMENTS, dollar + 1):
            if args:
                if joined is None:
                    joined = " ".join(args)
                parts.append(joined)
            pos = dollar + 1 + len(_ARGUMENTS)
            continue
        parts.append("$")
        pos = dollar + 1
    parts.append(content[pos:])
    return "".join(parts)