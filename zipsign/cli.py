"""A small verb-based command line framework.

An :class:`App` holds named verbs.  Each :class:`Verb` declares its own flags,
single-valued arguments and list arguments, parses them GNU style (short and
long options, options and operands in any order) and hands the result to a
command callable.
"""

from __future__ import annotations

import enum
import getopt
import sys
from dataclasses import dataclass
from typing import Callable, Iterable, TextIO

HELP_ID = "h"
HELP_NAME = "help"
_COLUMN_WIDTH = 20
_RIGHTS_MARK = "(c)"


class ArgumentType(enum.Enum):
    """Kind of value a command line argument takes."""

    FLAG = "flag"
    STRING = "string"
    LIST = "list"


@dataclass(frozen=True)
class Argument:
    """Declaration of one command line argument of a verb."""

    id: str
    name: str
    type: ArgumentType
    help_text: str = ""
    required: bool = True
    default_value: str = ""

    def is_optional(self) -> bool:
        """Tell whether the argument may be left out."""
        return not self.required

    def is_flag(self) -> bool:
        """Tell whether the argument is a flag without a value."""
        return self.type is ArgumentType.FLAG

    def has_default_value(self) -> bool:
        """Tell whether the argument has a non-empty default value."""
        return bool(self.default_value)


class Arguments:
    """Parsed argument values, keyed by argument id."""

    def __init__(self) -> None:
        self._values: dict[str, list[str]] = {}

    def contains(self, id: str) -> bool:
        """Tell whether a value was given for ``id``."""
        return id in self._values

    def __contains__(self, id: object) -> bool:
        return id in self._values

    def get(self, id: str) -> str:
        """Return the first value given for ``id``; raise KeyError if none."""
        return self.get_list(id)[0]

    def get_list(self, id: str) -> list[str]:
        """Return every value given for ``id``; raise KeyError if none."""
        try:
            return list(self._values[id])
        except KeyError:
            raise KeyError(f"id not found : {id}") from None

    def set(self, id: str, value: str) -> None:
        """Append ``value`` to the values of ``id``."""
        self._values.setdefault(id, []).append(value)


Command = Callable[[Arguments], int]


@dataclass(frozen=True)
class LongOption:
    """A long option name, whether it takes a value, and the id it maps to."""

    name: str
    has_arg: bool
    id: str


class Options:
    """Short and long option specifications derived from argument declarations.

    The help option is always appended last.
    """

    def __init__(self, args: Iterable[Argument]) -> None:
        args = list(args)
        self.short_opts = "".join(
            arg.id + ("" if arg.is_flag() else ":") for arg in args
        ) + HELP_ID
        self.long_opts = [
            LongOption(arg.name, not arg.is_flag(), arg.id) for arg in args
        ]
        self.long_opts.append(LongOption(HELP_NAME, False, HELP_ID))


@dataclass
class AppInfo:
    """Name, description and rights holder shown in usage texts."""

    name: str
    description: str = ""
    copyright: str = ""


def _banner(info: AppInfo) -> list[str]:
    """Return the two heading lines of a usage text."""
    return [
        f"{info.name}, Copyright {_RIGHTS_MARK} {info.copyright}",
        info.description,
    ]


class Verb:
    """A named sub-command with its own arguments."""

    def __init__(self, app_info: AppInfo, name: str, command: Command) -> None:
        self.app_info = app_info
        self.name = name
        self.command = command
        self.help_text = ""
        self.arguments: list[Argument] = []

    def set_help_text(self, help_text: str) -> Verb:
        """Set the one-line description of the verb."""
        self.help_text = help_text
        return self

    def add_flag(self, id: str, name: str, description: str = "") -> Verb:
        """Declare an optional flag that takes no value."""
        self.arguments.append(
            Argument(id, name, ArgumentType.FLAG, description, False, "")
        )
        return self

    def add_arg(
        self,
        id: str,
        name: str,
        description: str = "",
        required: bool = True,
        default: str = "",
    ) -> Verb:
        """Declare an argument that takes one value.

        ``default`` is accepted but not applied to parsed arguments.
        """
        self.arguments.append(
            Argument(id, name, ArgumentType.STRING, description, required, "")
        )
        return self

    def add_list(
        self,
        id: str,
        name: str,
        description: str = "",
        required: bool = True,
        default: str = "",
    ) -> Verb:
        """Declare an argument that may be given several times.

        ``default`` is accepted but not applied to parsed arguments.
        """
        self.arguments.append(
            Argument(id, name, ArgumentType.LIST, description, required, "")
        )
        return self

    def run(
        self,
        argv: Iterable[str],
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> int:
        """Parse the arguments following the verb name and run the command.

        Returns the command's exit code, 0 after printing help, or 1 when the
        arguments are invalid.
        """
        out = sys.stdout if out is None else out
        err = sys.stderr if err is None else err

        arguments = Arguments()
        for arg in self.arguments:
            if arg.has_default_value():
                arguments.set(arg.id, arg.default_value)

        options = Options(self.arguments)
        ids_by_name = {option.name: option.id for option in options.long_opts}
        long_spec = [
            option.name + ("=" if option.has_arg else "")
            for option in options.long_opts
        ]

        failed = False
        print_usage = False
        try:
            parsed, _operands = getopt.gnu_getopt(
                list(argv), options.short_opts, long_spec
            )
        except getopt.GetoptError:
            out.write("error: unrecognized argument\n")
            failed = print_usage = True
            parsed = []

        for option, value in parsed:
            arg_id = ids_by_name[option[2:]] if option.startswith("--") else option[1:]
            if arg_id == HELP_ID:
                print_usage = True
                break
            arguments.set(arg_id, value)

        if not failed and not print_usage:
            for arg in self.arguments:
                if not arg.is_optional() and not arguments.contains(arg.id):
                    err.write(f"error: missing required argument: -{arg.id}\n")
                    failed = print_usage = True

        if print_usage:
            out.write(self.usage())
            return 1 if failed else 0
        return self.command(arguments)

    def usage(self) -> str:
        """Return the usage text of the verb."""
        info = self.app_info
        synopsis = []
        for arg in self.arguments:
            item = f"-{arg.id}" + ("" if arg.is_flag() else " <value>")
            synopsis.append(f"[{item}]" if arg.is_optional() else item)
        lines = [
            *_banner(info),
            "",
            f"{self.name}: {self.help_text}",
            "",
            "Usage:",
            "\t" + " ".join([info.name, self.name, *synopsis]) + " | -h",
            "",
            "Arguments:",
        ]
        for arg in self.arguments:
            text = ("" if arg.is_optional() else "Required. ") + arg.help_text
            if arg.has_default_value():
                text += f" (default: {arg.default_value})"
            lines.append(f"\t-{arg.id}, --{arg.name:<{_COLUMN_WIDTH}}\t{text}")
        lines.append(f"\t-h, --{HELP_NAME:<{_COLUMN_WIDTH}}\tPrint usage.")
        lines.append("")
        return "\n".join(lines) + "\n"


class App:
    """An application made of verbs, dispatched by the first argument."""

    def __init__(self, name: str) -> None:
        self.info = AppInfo(name)
        self.additional_info = ""
        self.verbs: list[Verb] = []

    def add(self, name: str, command: Command) -> Verb:
        """Add a verb and return it for further configuration."""
        verb = Verb(self.info, name, command)
        self.verbs.append(verb)
        return verb

    def set_copyright(self, value: str) -> App:
        """Set the rights holder shown in usage texts."""
        self.info.copyright = value
        return self

    def set_description(self, value: str) -> App:
        """Set the description shown in usage texts."""
        self.info.description = value
        return self

    def set_additional_info(self, value: str) -> App:
        """Set text appended to the application usage."""
        self.additional_info = value
        return self

    def _find(self, name: str) -> Verb | None:
        return next((verb for verb in self.verbs if verb.name == name), None)

    def run(
        self,
        argv: Iterable[str],
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> int:
        """Run the verb named by the first argument and return its exit code."""
        out = sys.stdout if out is None else out
        err = sys.stderr if err is None else err
        argv = list(argv)

        if not argv:
            err.write("error: missing verb\n")
            out.write(self.usage())
            return 1

        verb_name, rest = argv[0], argv[1:]
        verb = self._find(verb_name)
        if verb is not None:
            return verb.run(rest, out, err)
        if verb_name in ("-h", "--help"):
            out.write(self.usage())
            return 0

        err.write(f"error: unknown verb: {verb_name}\n")
        out.write(self.usage())
        return 1

    def usage(self) -> str:
        """Return the usage text of the application."""
        info = self.info
        synopsis = "".join(f"{verb.name} <args...> | " for verb in self.verbs)
        lines = [
            *_banner(info),
            "",
            "Usage:",
            f"\t{info.name} {synopsis}-h",
            "",
            "Verbs:",
        ]
        lines.extend(
            f"\t{verb.name:<{_COLUMN_WIDTH}}\t{verb.help_text}" for verb in self.verbs
        )
        lines.append(f"\t{'-h, --help':<{_COLUMN_WIDTH}}\tPrint usage.")
        lines.append("")
        return "\n".join(lines) + "\n" + self.additional_info