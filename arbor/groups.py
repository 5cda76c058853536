"""
Arbor flag groups: constraints spanning several flags of one command.

Kinds
- required together: if any flag of the group is set, all of them must be.
- one required: at least one flag of the group must be set.
- mutually exclusive: at most one flag of the group may be set.

Storage
- A group is recorded as an annotation on each member flag; the value is the member
  names joined by spaces ("a b c"), so a flag can belong to several groups.
- A group is only enforced when every member exists in the command's merged flags.

Messages (groups are checked in sorted order, names within a message are sorted)
- "if any flags in the group [a b] are set they must all be set; missing [b]"
- "at least one of the flags in the group [a b] is required"
- "if any flags in the group [a b] are set none of the others can be; [a b] were all set"
"""
import logging

from .faults import *
from .utils import quote

logger = logging.getLogger(__name__)

REQUIRED_AS_GROUP = "cobra_annotation_required_if_others_set"
ONE_REQUIRED = "cobra_annotation_one_required"
MUTUALLY_EXCLUSIVE = "cobra_annotation_mutually_exclusive"


def _mark(command, names, annotation, kind):
    command.merge_persistent_flags()
    key = " ".join(names)
    for name in names:
        if (flag := command.flags.lookup(name)) is None:
            raise CommandDefinitionError(f"Failed to find flag {quote(name)} and mark it as being {kind}")
        command.flags.set_annotation(name, annotation, [*flag.annotations.get(annotation, ()), key])


def mark_flags_required_together(command, /, *names):
    _mark(command, names, REQUIRED_AS_GROUP, "required in a flag group")


def mark_flags_one_required(command, /, *names):
    _mark(command, names, ONE_REQUIRED, "in a one-required flag group")


def mark_flags_mutually_exclusive(command, /, *names):
    _mark(command, names, MUTUALLY_EXCLUSIVE, "in a mutually exclusive flag group")


def _collect(flagset, flag, annotation, status):
    for group in flag.annotations.get(annotation, ()):
        if group not in status:
            members = group.split(" ")
            if any(flagset.lookup(member) is None for member in members):
                continue
            status[group] = dict.fromkeys(members, False)
        status[group][flag.name] = flag.changed


def _statuses(flagset):
    together, one, exclusive = {}, {}, {}
    for flag in flagset:
        _collect(flagset, flag, REQUIRED_AS_GROUP, together)
        _collect(flagset, flag, ONE_REQUIRED, one)
        _collect(flagset, flag, MUTUALLY_EXCLUSIVE, exclusive)
    return together, one, exclusive


def validate_flag_groups(command, /):
    if command.disable_flag_parsing:
        return
    together, one, exclusive = _statuses(command.flags)
    for group in sorted(together):
        unset = sorted(name for name, changed in together[group].items() if not changed)
        if unset and len(unset) != len(together[group]):
            raise FlagGroupError(
                f"if any flags in the group [{group}] are set they must all be set; missing [{' '.join(unset)}]",
                command=command,
            )
    for group in sorted(one):
        if not any(one[group].values()):
            raise FlagGroupError(f"at least one of the flags in the group [{group}] is required", command=command)
    for group in sorted(exclusive):
        changed = sorted(name for name, changed in exclusive[group].items() if changed)
        if len(changed) > 1:
            raise FlagGroupError(
                f"if any flags in the group [{group}] are set none of the others can be; [{' '.join(changed)}] were all set",
                command=command,
            )


def enforce_flag_groups_for_completion(command, /):
    """
    Adjust flag metadata so completion proposes what the groups demand.

    Members of a partly set required-together group and of an unset one-required group
    become required; the other members of a used mutually exclusive group are hidden.
    """
    if command.disable_flag_parsing:
        return
    together, one, exclusive = _statuses(command.flags)
    for status in together.values():
        if any(status.values()):
            for name in status:
                command.mark_flag_required(name)
    for status in one.values():
        if not any(status.values()):
            for name in status:
                command.mark_flag_required(name)
    for status in exclusive.values():
        for name, changed in status.items():
            if changed:
                for other in status:
                    if other != name:
                        command.flags.lookup(other).hidden = True
    logger.debug("flag groups of %r enforced for completion", command.name)


__all__ = (
    "REQUIRED_AS_GROUP",
    "ONE_REQUIRED",
    "MUTUALLY_EXCLUSIVE",
    "mark_flags_required_together",
    "mark_flags_one_required",
    "mark_flags_mutually_exclusive",
    "validate_flag_groups",
    "enforce_flag_groups_for_completion",
)
