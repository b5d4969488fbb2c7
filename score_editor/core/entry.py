"""
Text entry - type notes instead of clicking them in.

A small line-oriented syntax for entering events into a score. Parsed
input is turned into ordinary commands, so a block of typed music is one
undoable step.

Syntax Examples:
    C4 q                # C4 quarter note
    D#5 h.              # dotted half
    E4~ q               # tied into the next event
    [C4 E4 G4] h        # chord
    r e                 # eighth rest
    |                   # barline: continue at the next measure

Duration codes:
    w = whole, h = half, q = quarter, e = eighth, s = sixteenth,
    t = thirty-second, x = sixty-fourth; append . for dotted

Special commands (one per line):
    title: Amazing Grace
    key: G
    time: 3/4           # only before the first event
    tempo: 100
    clef: bass
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from score_editor.core.commands import (
    Command,
    CommandValidationError,
    CompositeCommand,
    EnterEventCommand,
    SetBpmCommand,
    SetClefCommand,
    SetKeySignatureCommand,
    SetTitleCommand,
)
from score_editor.core.durations import Duration, duration_to_quants
from score_editor.core.measure_commands import AddMeasureCommand, SetTimeSignatureCommand
from score_editor.core.models import Score, make_note_event, make_rest_event

logger = logging.getLogger(__name__)


@dataclass
class ParsedEvent:
    """A note, chord or rest read from text."""
    pitches: List[str] = field(default_factory=list)  # empty for a rest
    duration: Duration = Duration.QUARTER
    dotted: bool = False
    tied: bool = False

    @property
    def is_rest(self) -> bool:
        return not self.pitches

    @property
    def quants(self) -> int:
        return duration_to_quants(self.duration, self.dotted)


@dataclass
class ParsedBarline:
    """Represents a barline."""
    style: str = "single"  # single, double, final


@dataclass
class ParsedCommand:
    """Represents a special command."""
    command: str  # title, key, time, tempo, clef
    value: str


ParsedElement = Union[ParsedEvent, ParsedBarline, ParsedCommand]


class EntryParseError(ValueError):
    """Error during text entry parsing."""
    def __init__(self, message: str, line: int = 1):
        super().__init__(message)
        self.line = line


class EntryParser:
    """
    Parser for typed note entry.

    Unknown tokens are skipped with a warning; malformed lines are
    collected in ``errors`` and the rest of the input is still parsed.
    """

    PITCH_PATTERN = re.compile(r"^([A-Ga-g])(##|#|bb|b)?(\d)(~?)$")
    DURATION_PATTERN = re.compile(r"^([whqestx])(\.?)$", re.IGNORECASE)
    COMMAND_PATTERN = re.compile(r"^(title|key|time|tempo|clef):\s*(.+)$", re.IGNORECASE)
    BARLINE_PATTERNS = {
        "|||": "final",
        "||": "double",
        "|": "single",
        "measure": "single",
    }

    def __init__(self):
        self.errors: List[EntryParseError] = []

    def parse(self, text: str) -> List[ParsedElement]:
        """
        Parse text into entry elements.

        Args:
            text: One or more lines of entry syntax; '#' starts a comment line

        Returns:
            Parsed elements in input order
        """
        self.errors = []
        elements: List[ParsedElement] = []

        for line_num, line in enumerate(text.strip().split("\n"), 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            try:
                elements.extend(self._parse_line(line))
            except EntryParseError as e:
                e.line = line_num
                self.errors.append(e)

        return elements

    def validate(self, text: str) -> List[EntryParseError]:
        self.parse(text)
        return self.errors

    def _parse_line(self, line: str) -> List[ParsedElement]:
        cmd_match = self.COMMAND_PATTERN.match(line)
        if cmd_match:
            return [ParsedCommand(command=cmd_match.group(1).lower(), value=cmd_match.group(2).strip())]

        elements: List[ParsedElement] = []
        tokens = self._tokenize(line)

        i = 0
        while i < len(tokens):
            token = tokens[i]

            if token in self.BARLINE_PATTERNS:
                elements.append(ParsedBarline(style=self.BARLINE_PATTERNS[token]))
                i += 1
                continue

            if token.lower() == "r":
                event = ParsedEvent()
                i += 1 + self._read_duration(tokens, i + 1, event)
                elements.append(event)
                continue

            if token.startswith("["):
                event = ParsedEvent(pitches=self._chord_pitches(token))
                event.tied = token.endswith("~")
                i += 1 + self._read_duration(tokens, i + 1, event)
                elements.append(event)
                continue

            match = self.PITCH_PATTERN.match(token)
            if match:
                step, accidental, octave, tie = match.groups()
                event = ParsedEvent(pitches=[f"{step.upper()}{accidental or ''}{octave}"], tied=bool(tie))
                i += 1 + self._read_duration(tokens, i + 1, event)
                elements.append(event)
                continue

            logger.warning(f"Unknown token: {token}")
            i += 1

        return elements

    def _tokenize(self, line: str) -> List[str]:
        """Split on whitespace, keeping [...] chords as one token."""
        tokens = []
        current = ""
        in_brackets = False

        for char in line:
            if char == "[":
                if current.strip():
                    tokens.append(current.strip())
                current = char
                in_brackets = True
            elif char == "]":
                current += char
                in_brackets = False
            elif char.isspace() and not in_brackets:
                if current.strip():
                    tokens.append(current.strip())
                current = ""
            else:
                current += char

        if in_brackets:
            raise EntryParseError(f"Unclosed chord: {current.strip()}")
        if current.strip():
            tokens.append(current.strip())
        return tokens

    def _chord_pitches(self, token: str) -> List[str]:
        content = token.rstrip("~")
        if not content.endswith("]"):
            raise EntryParseError(f"Malformed chord: {token}")

        pitches = []
        for p in content[1:-1].split():
            match = self.PITCH_PATTERN.match(p)
            if not match or match.group(4):
                raise EntryParseError(f"Invalid pitch in chord: {p}")
            step, accidental, octave, _ = match.groups()
            pitches.append(f"{step.upper()}{accidental or ''}{octave}")

        if not pitches:
            raise EntryParseError("Empty chord")
        return pitches

    def _read_duration(self, tokens: List[str], index: int, event: ParsedEvent) -> int:
        """Apply an optional duration token; returns how many tokens were used."""
        if index >= len(tokens):
            return 0
        match = self.DURATION_PATTERN.match(tokens[index])
        if not match:
            return 0
        event.duration = Duration.from_code(match.group(1))
        event.dotted = match.group(2) == "."
        return 1


def _special_command(parsed: ParsedCommand, staff_index: int) -> Command:
    if parsed.command == "title":
        return SetTitleCommand(parsed.value)
    if parsed.command == "key":
        return SetKeySignatureCommand(parsed.value)
    if parsed.command == "time":
        return SetTimeSignatureCommand(parsed.value)
    if parsed.command == "tempo":
        try:
            bpm = float(parsed.value)
        except ValueError as e:
            raise CommandValidationError(f"Invalid tempo: {parsed.value!r}") from e
        return SetBpmCommand(bpm)
    return SetClefCommand(parsed.value, staff_index)


def build_entry_command(
    score: Score,
    text: str,
    measure_index: int = 0,
    start_quant: int = 0,
    staff_index: int = 0,
) -> Optional[CompositeCommand]:
    """
    Turn typed entry into a single composite command.

    Events are entered in overwrite mode one after another starting at
    ``(measure_index, start_quant)``. An event that does not fit in the
    rest of the measure moves to the start of the next one; measures are
    appended as needed.

    Args:
        score: Score the command will be dispatched against
        text: Entry text
        measure_index: Measure to start in
        start_quant: Position within that measure
        staff_index: Staff to enter into

    Returns:
        The composite command, or None if the text holds nothing to enter

    Raises:
        EntryParseError: If any line fails to parse
        CommandValidationError: If an element cannot become a command
    """
    if not 0 <= staff_index < len(score.staves):
        raise CommandValidationError(f"No staff {staff_index} to enter into")

    parser = EntryParser()
    elements = parser.parse(text)
    if parser.errors:
        raise parser.errors[0]

    commands: List[Command] = []
    working = score
    measure, quant = measure_index, start_quant
    entered = False

    def add(command: Command) -> None:
        nonlocal working
        commands.append(command)
        working = command.execute(working).score

    for element in elements:
        if isinstance(element, ParsedCommand):
            if element.command == "time" and entered:
                raise CommandValidationError("time: must come before the first note")
            add(_special_command(element, staff_index))
            continue

        if isinstance(element, ParsedBarline):
            if quant > 0:
                measure, quant = measure + 1, 0
            continue

        capacity = working.quants_per_measure
        if element.quants > capacity:
            raise CommandValidationError(
                f"{element.duration.value} does not fit in a {working.time_signature} measure"
            )
        if quant + element.quants > capacity:
            measure, quant = measure + 1, 0
        while measure >= working.num_measures:
            add(AddMeasureCommand())

        if element.is_rest:
            event = make_rest_event(element.duration, element.dotted)
        else:
            event = make_note_event(element.pitches, element.duration, element.dotted, tied=element.tied)
        add(EnterEventCommand(measure, event, quant, staff_index))
        quant += element.quants
        entered = True

    if not commands:
        return None
    logger.debug(f"Built {len(commands)} commands from text entry")
    return CompositeCommand(commands, description="Text entry")
