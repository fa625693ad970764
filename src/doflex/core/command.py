"""Flex command line parsing.

The kubelet runs the driver as ``<binary> <verb> [args...]``. Every verb has a
fixed list of positional slots; ``parse_command`` turns the argument vector
into an immutable :class:`Command` and performs no I/O.
"""

from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict

from doflex.core.exceptions import MalformedCommandError, UnknownVerbError


class Verb(str, Enum):
    """Flex lifecycle verbs."""

    INIT = "init"
    GET_VOLUME_NAME = "get-volume-name"
    ATTACH = "attach"
    DETACH = "detach"
    WAIT_FOR_ATTACH = "wait-for-attach"
    IS_ATTACHED = "is-attached"
    MOUNT_DEVICE = "mount-device"
    UNMOUNT_DEVICE = "unmount-device"
    MOUNT = "mount"
    UNMOUNT = "unmount"


# Kubelet spells compound verbs without separators.
VERB_ALIASES: dict[str, Verb] = {
    "getvolumename": Verb.GET_VOLUME_NAME,
    "waitforattach": Verb.WAIT_FOR_ATTACH,
    "isattached": Verb.IS_ATTACHED,
    "mountdevice": Verb.MOUNT_DEVICE,
    "unmountdevice": Verb.UNMOUNT_DEVICE,
}

# Positional slots per verb, in argument order.
VERB_SLOTS: dict[Verb, tuple[str, ...]] = {
    Verb.INIT: (),
    Verb.GET_VOLUME_NAME: ("options",),
    Verb.ATTACH: ("options", "node_name"),
    Verb.DETACH: ("device", "node_name"),
    Verb.WAIT_FOR_ATTACH: ("device", "options"),
    Verb.IS_ATTACHED: ("options", "node_name"),
    Verb.MOUNT_DEVICE: ("mount_dir", "device", "options"),
    Verb.UNMOUNT_DEVICE: ("device",),
    Verb.MOUNT: ("mount_dir", "options"),
    Verb.UNMOUNT: ("mount_dir",),
}


class Command(BaseModel):
    """A parsed flex invocation."""

    model_config = ConfigDict(frozen=True)

    verb: Verb
    options: str | None = None
    node_name: str | None = None
    device: str | None = None
    mount_dir: str | None = None


def parse_verb(value: str) -> Verb:
    """Map a verb string, hyphenated or kubelet spelling, to a Verb."""
    try:
        return Verb(value)
    except ValueError:
        pass
    try:
        return VERB_ALIASES[value]
    except KeyError:
        raise UnknownVerbError(value) from None


def parse_command(args: Sequence[str]) -> Command:
    """Build a Command from a full argument vector.

    Args:
        args: Argument vector, ``args[0]`` being the executable name.

    Returns:
        The parsed command.

    Raises:
        MalformedCommandError: No verb, or a positional argument is missing.
        UnknownVerbError: The verb is not recognized.
    """
    if len(args) < 2:
        raise MalformedCommandError("no flex command argument found")

    verb = parse_verb(args[1])
    slots = VERB_SLOTS[verb]
    positional = list(args[2:])

    if len(positional) < len(slots):
        missing = ", ".join(slots[len(positional):])
        raise MalformedCommandError(f"flex command {verb.value!r} is missing arguments: {missing}")

    return Command(verb=verb, **dict(zip(slots, positional)))
