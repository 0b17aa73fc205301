"""Extraction of action blocks from model replies."""

import re
from dataclasses import dataclass, field
from typing import List, Union
from .base import (
    Action,
    ActionKind,
    AppendFile,
    CreateFile,
    EditFile,
    ExecuteCommand,
    ListDirectory,
    ParseIssue,
    ReadFile,
    ShowDiff,
)
from ..utils.errors import ActionNotFoundError

FENCE = "```"
OLD_SEPARATOR = "---OLD---"
NEW_SEPARATOR = "---NEW---"

KNOWN_TAGS = {kind.value for kind in ActionKind}

# Tags whose only payload is the argument on the opening line.
ARGUMENT_ONLY_TAGS = {
    ActionKind.READ_FILE.value,
    ActionKind.LIST_DIRECTORY.value,
    ActionKind.SHOW_DIFF.value,
}

_OPEN_RE = re.compile(r"^```([A-Za-z_]+)(?::(.*))?$")
_INLINE_RE = re.compile(r"```(read_file|list_directory):(.*?)```")
_SHOW_DIFF_RE = re.compile(r"```show_diff\b")


@dataclass
class ParseOutcome:
    """Actions and diagnostics found in one reply, in order of appearance."""
    entries: List[Union[Action, ParseIssue]] = field(default_factory=list)

    @property
    def actions(self) -> List[Action]:
        return [entry for entry in self.entries if not isinstance(entry, ParseIssue)]

    @property
    def issues(self) -> List[ParseIssue]:
        return [entry for entry in self.entries if isinstance(entry, ParseIssue)]

    @property
    def is_empty(self) -> bool:
        return not self.entries


@dataclass
class _Found:
    position: int
    tag: str
    entry: Union[Action, ParseIssue]


class ActionParser:
    """
    Pure, synchronous parser for the action-block protocol.

    Multi-line blocks open with a line ```` ```tag[:argument] ```` and close
    with a line that is exactly ```` ``` ````. ``read_file`` and
    ``list_directory`` are also accepted inline (```` ```read_file:x``` ````
    anywhere in a line), and ``show_diff`` anywhere in the text triggers a
    single diff.
    """

    def parse(self, text: str) -> ParseOutcome:
        found = self._scan(text or "")
        found.sort(key=lambda item: item.position)
        return ParseOutcome(entries=[item.entry for item in found])

    def find(self, tag: str, text: str) -> ParseOutcome:
        """
        Extract only the blocks written with ``tag``.

        Raises ActionNotFoundError when the text holds no such block, which is
        distinct from a block whose argument is empty (reported as an issue).
        """
        if tag not in KNOWN_TAGS:
            raise ValueError(f"Unknown action tag: {tag}")

        found = [item for item in self._scan(text or "") if item.tag == tag]
        if not found:
            raise ActionNotFoundError(tag)
        found.sort(key=lambda item: item.position)
        return ParseOutcome(entries=[item.entry for item in found])

    def _scan(self, text: str) -> List[_Found]:
        found: List[_Found] = []

        diff = _SHOW_DIFF_RE.search(text)
        if diff:
            found.append(_Found(diff.start(), ActionKind.SHOW_DIFF.value, ShowDiff()))

        lines = text.split("\n")
        offsets = []
        offset = 0
        for line in lines:
            offsets.append(offset)
            offset += len(line) + 1

        i = 0
        while i < len(lines):
            line = lines[i].rstrip("\r")

            inline = list(_INLINE_RE.finditer(line))
            if inline:
                for match in inline:
                    tag, argument = match.group(1), match.group(2)
                    found.append(_Found(
                        offsets[i] + match.start(),
                        tag,
                        self._argument_action(tag, argument.rstrip("\n").strip(), offsets[i] + match.start())
                    ))
                i += 1
                continue

            opening = _OPEN_RE.match(line.rstrip())
            if not opening or opening.group(1) not in KNOWN_TAGS:
                i += 1
                continue

            tag = opening.group(1)
            argument = (opening.group(2) or "").strip()
            position = offsets[i]

            if tag == ActionKind.SHOW_DIFF.value:
                i += 1
                continue

            body: List[str] = []
            i += 1
            closed = False
            while i < len(lines):
                current = lines[i].rstrip("\r")
                if current.rstrip() == FENCE:
                    closed = True
                    break
                body.append(current)
                i += 1
            i += 1

            if not closed:
                found.append(_Found(position, tag, ParseIssue(
                    tag=tag,
                    target=argument,
                    message=f"Unterminated '{tag}' block: missing closing {FENCE}",
                    position=position
                )))
                continue

            found.append(_Found(position, tag, self._block_action(tag, argument, body, position)))

        return found

    def _argument_action(self, tag: str, argument: str, position: int) -> Union[Action, ParseIssue]:
        if not argument:
            return ParseIssue(tag=tag, message=f"Empty path in '{tag}' block", position=position)
        if tag == ActionKind.READ_FILE.value:
            return ReadFile(filename=argument)
        return ListDirectory(path=argument)

    def _block_action(self, tag: str, argument: str, body: List[str], position: int) -> Union[Action, ParseIssue]:
        if tag in ARGUMENT_ONLY_TAGS:
            # Multi-line form; the path may also sit alone on the first body line.
            if not argument:
                argument = next((line.strip() for line in body if line.strip()), "")
            return self._argument_action(tag, argument, position)

        if tag in (ActionKind.EXECUTE_COMMAND.value, ActionKind.EXECUTE_COMMAND_SILENT.value):
            command = "\n".join(body).strip() or argument
            if not command:
                return ParseIssue(tag=tag, message=f"Empty command in '{tag}' block", position=position)
            return ExecuteCommand(command=command, silent=tag == ActionKind.EXECUTE_COMMAND_SILENT.value)

        if not argument:
            return ParseIssue(tag=tag, message=f"Empty filename in '{tag}' block", position=position)

        if tag == ActionKind.CREATE_FILE.value:
            return CreateFile(filename=argument, content="\n".join(body))

        if tag == ActionKind.APPEND_FILE.value:
            return AppendFile(filename=argument, content="\n".join(body))

        return self._edit_action(argument, body, position)

    def _edit_action(self, filename: str, body: List[str], position: int) -> Union[Action, ParseIssue]:
        stripped = [line.strip() for line in body]
        if OLD_SEPARATOR not in stripped:
            return ParseIssue(
                tag=ActionKind.EDIT_FILE.value,
                target=filename,
                message=f"Missing {OLD_SEPARATOR} separator in 'edit_file' block",
                position=position
            )
        old_index = stripped.index(OLD_SEPARATOR)

        try:
            new_index = stripped.index(NEW_SEPARATOR, old_index + 1)
        except ValueError:
            return ParseIssue(
                tag=ActionKind.EDIT_FILE.value,
                target=filename,
                message=f"Missing {NEW_SEPARATOR} separator in 'edit_file' block",
                position=position
            )

        old_text = "\n".join(body[old_index + 1:new_index])
        new_text = "\n".join(body[new_index + 1:])
        if not old_text:
            return ParseIssue(
                tag=ActionKind.EDIT_FILE.value,
                target=filename,
                message="Empty OLD text in 'edit_file' block",
                position=position
            )
        return EditFile(filename=filename, old_text=old_text, new_text=new_text)
