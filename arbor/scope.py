"""
Arbor flag scoping: the per-command views over own and ancestor flags.

Scope
- FlagScope owns a command's two declared sets and derives every other view on demand.
  • flags: everything the command parses (own flags, plus persistent ones once merged).
  • persistent_flags: flags declared here for this command and all descendants.
  • parents(): the union of every ancestor's persistent flags, nearest ancestor first.
  • local_flags(): own and persistent flags, minus the ones that are the very same
    object as an ancestor's persistent flag (a redeclared flag shadows).
  • inherited_flags(): ancestor persistent flags not present in the local view.
  • local_non_persistent_flags(): local flags not declared persistent here.

Invariants
- Merging is idempotent: adding a name that already exists is a no-op.
- Derived views are rebuilt on every call so tree edits are always reflected.
- The process-wide default set (arbor.flags.command_line) is folded into the root's
  persistent flags on every merge.

Validation
- validate_required_flags(): one RequiredFlagsError naming every required flag that was
  not set, e.g. 'required flag(s) "foo1", "foo2" not set'.
"""
import logging

from . import flags as _flags
from .faults import *
from .flags import FlagSet, REQUIRED_ANNOTATION

logger = logging.getLogger(__name__)


class FlagScope:
    """Flag sets and derived views of one command."""

    def __init__(self, command, /):
        self._command = command
        self._flags = None
        self._persistent = None
        self._parents = None

    def __repr__(self):
        return f"<FlagScope of {self._command.name!r}>"

    def _new_set(self, *, sort=True):
        flagset = FlagSet(self._command.display_name)
        flagset.sort_flags = sort
        if (normalize := self._command.global_normalization_func) is not None:
            flagset.set_normalize_func(normalize)
        return flagset

    @property
    def flags(self):
        if self._flags is None:
            self._flags = FlagSet(self._command.display_name)
        return self._flags

    @property
    def persistent_flags(self):
        if self._persistent is None:
            self._persistent = FlagSet(self._command.display_name)
        return self._persistent

    def reset(self):
        self._flags = FlagSet(self._command.display_name)
        self._persistent = FlagSet(self._command.display_name)
        self._parents = None

    def set_normalize_func(self, func, /):
        self.flags.set_normalize_func(func)
        self.persistent_flags.set_normalize_func(func)

    # --- merging ---

    def parents(self):
        """Rebuild and return the merged set of ancestor persistent flags."""
        parents = self._new_set(sort=False)
        self._command.root.persistent_flags.add_flag_set(_flags.command_line)
        ancestor = self._command.parent
        while ancestor is not None:
            parents.add_flag_set(ancestor.persistent_flags)
            ancestor = ancestor.parent
        self._parents = parents
        return parents

    def merge(self):
        parents = self.parents()
        self.flags.add_flag_set(self.persistent_flags)
        self.flags.add_flag_set(parents)
        logger.debug("merged flags of %r: %s", self._command.name, [flag.name for flag in self.flags])

    # --- derived views ---

    def local_flags(self):
        self.merge()
        local = self._new_set(sort=self.flags.sort_flags)
        for flagset in (self.flags, self.persistent_flags):
            for flag in flagset:
                if local.lookup(flag.name) is None and flag is not self._parents.lookup(flag.name):
                    local.add_flag(flag)
        return local

    def inherited_flags(self):
        local = self.local_flags()
        inherited = self._new_set()
        for flag in self._parents:
            if inherited.lookup(flag.name) is None and local.lookup(flag.name) is None:
                inherited.add_flag(flag)
        return inherited

    def local_non_persistent_flags(self):
        persistent = self.persistent_flags
        view = FlagSet(self._command.display_name)
        for flag in self.local_flags():
            if persistent.lookup(flag.name) is None:
                view.add_flag(flag)
        return view

    def lookup(self, name, /):
        """Find a flag on the command itself, then among its own and its ancestors' persistent flags."""
        if (flag := self.flags.lookup(name)) is not None:
            return flag
        if self._persistent is not None and (flag := self._persistent.lookup(name)) is not None:
            return flag
        return self.parents().lookup(name)

    # --- parsing and validation ---

    def parse(self, arguments, /):
        """
        Merge, then parse arguments against the command's flags.

        Deprecation notices produced by a successful parse are printed on the command's
        output (stderr unless redirected). Nothing happens when flag parsing is disabled.
        """
        command = self._command
        if command.disable_flag_parsing:
            return
        self.merge()
        self.flags.allow_unknown_flags = command.allow_unknown_flags
        self.flags.parse(arguments)
        for notice in self.flags.notices:
            command.print(f"{notice}\n")

    def mark_required(self, name, /, *, persistent=False):
        flagset = self.persistent_flags if persistent else self.flags
        flagset.set_annotation(name, REQUIRED_ANNOTATION, ["true"])

    def validate_required_flags(self):
        if self._command.disable_flag_parsing:
            return
        missing = [
            flag.name for flag in self.flags
            if (flag.annotations.get(REQUIRED_ANNOTATION) or [""])[0] == "true" and not flag.changed
        ]
        if missing:
            raise RequiredFlagsError('required flag(s) "%s" not set' % '", "'.join(missing), command=self._command)


__all__ = (
    "FlagScope",
)
