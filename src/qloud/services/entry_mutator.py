# src/qloud/services/entry_mutator.py
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

import logging
import os
import shutil
import stat
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..core.exceptions import (ConfinementError, EntryNotFoundError,
                               NameCollisionError, NotDirectoryError,
                               QloudError)
from ..core.validators import validate_entry_name
from .models import ItemResult
from .path_codec import PathCodec

log = logging.getLogger(__name__)


def format_date_for_name(moment: Optional[datetime] = None) -> str:
    """DD-MM-YY_HH-MM-SS, used to disambiguate moved items."""
    return (moment or datetime.now()).strftime("%d-%m-%y_%H-%M-%S")


def is_self_move(source: Path, dest_dir: Path) -> bool:
    """True when ``dest_dir`` is ``source`` itself or lies inside it."""
    source_str, dest_str = str(source), str(dest_dir)
    return dest_str == source_str or dest_str.startswith(source_str.rstrip(os.sep) + os.sep)


class EntryMutator:
    """Folder creation, deletion, moves and renames below the storage root."""

    def __init__(self, codec: PathCodec):
        self.codec = codec

    # --- Create ---
    def create_folder(self, parent: Path, name: str) -> Path:
        """
        Creates ``name`` under ``parent``. An existing entry of that name is
        never reused: the new folder gets a ``" - (<epoch ms>)"`` suffix.
        """
        name = validate_entry_name(name)
        target = self.codec.child(parent, name)
        if os.path.lexists(target):
            stamp = int(time.time() * 1000)
            candidate = self.codec.child(parent, f"{name} - ({stamp})")
            while os.path.lexists(candidate):
                stamp += 1
                candidate = self.codec.child(parent, f"{name} - ({stamp})")
            target = candidate
        target.mkdir(parents=True)
        log.info(f"Created folder {self.codec.relative_to_root(target)}")
        return target

    # --- Delete ---
    def delete_entry(self, target: Path):
        if self.codec.is_root(target):
            raise ConfinementError("The storage root cannot be deleted.")
        try:
            mode = os.lstat(target).st_mode
        except FileNotFoundError:
            raise EntryNotFoundError(f"Path not found: {self.codec.relative_to_root(target)}")
        if stat.S_ISDIR(mode):
            shutil.rmtree(target)
        else:
            os.unlink(target)
        log.info(f"Deleted {self.codec.relative_to_root(target)}")

    def delete(self, items: Iterable[Tuple[str, Path]]) -> List[ItemResult]:
        """Deletes each (label, path) pair; a failure is recorded and the batch goes on."""
        results = []
        for label, target in items:
            try:
                self.delete_entry(target)
                results.append(ItemResult(item=label, ok=True))
            except (QloudError, OSError) as e:
                log.warning(f"Failed to delete item '{label}': {e}")
                results.append(ItemResult(item=label, ok=False, error=str(e)))
        return results

    # --- Move ---
    def move_entry(self, source: Path, dest_dir: Path, label: str = "") -> ItemResult:
        if self.codec.is_root(source):
            raise ConfinementError("The storage root cannot be moved.")
        if not os.path.lexists(source):
            raise EntryNotFoundError(f"Path not found: {self.codec.relative_to_root(source)}")
        if os.path.exists(dest_dir) and not os.path.isdir(dest_dir):
            raise NotDirectoryError(f"Not a directory: {self.codec.relative_to_root(dest_dir)}")

        target = self._free_move_target(source.name, dest_dir)

        if is_self_move(source, dest_dir):
            # A directory cannot be renamed into its own subtree; copy it and keep the source.
            copy_recursive(source, target)
            log.info(f"Copied {self.codec.relative_to_root(source)} into its own subtree at "
                     f"{self.codec.relative_to_root(target)}")
            return ItemResult(
                item=label or self.codec.encode_absolute(source), ok=True,
                destination=self.codec.encode_absolute(target), copied=True, source_kept=True,
            )

        target.parent.mkdir(parents=True, exist_ok=True)
        os.rename(source, target)
        log.info(f"Moved {self.codec.relative_to_root(source)} to {self.codec.relative_to_root(target)}")
        return ItemResult(
            item=label or self.codec.encode_absolute(source), ok=True,
            destination=self.codec.encode_absolute(target),
        )

    def _free_move_target(self, name: str, dest_dir: Path) -> Path:
        """``name``, else ``name_(<date>)``, else ``name_(<date>) (n)`` for the first free n."""
        target = self.codec.child(dest_dir, name)
        if not os.path.lexists(target):
            return target
        stamped = f"{name}_({format_date_for_name()})"
        target = self.codec.child(dest_dir, stamped)
        counter = 1
        while os.path.lexists(target):
            target = self.codec.child(dest_dir, f"{stamped} ({counter})")
            counter += 1
        return target

    def move(self, items: Iterable[Tuple[str, Path]], dest_dir: Path) -> List[ItemResult]:
        results = []
        for label, source in items:
            try:
                results.append(self.move_entry(source, dest_dir, label))
            except (QloudError, OSError, shutil.Error) as e:
                log.warning(f"Failed to move item '{label}': {e}")
                results.append(ItemResult(item=label, ok=False, error=str(e)))
        return results

    # --- Rename ---
    def rename(self, parent: Path, name: str, new_name: str) -> Path:
        """Renames ``parent/name`` to ``parent/new_name``. Never overwrites."""
        new_name = validate_entry_name(new_name)
        source = self.codec.child(parent, name)
        target = self.codec.child(parent, new_name)
        if self.codec.is_root(source):
            raise ConfinementError("The storage root cannot be renamed.")
        if not os.path.lexists(source):
            raise EntryNotFoundError(f"'{name}' does not exist.")
        if os.path.lexists(target):
            raise NameCollisionError(f"An item named '{new_name}' already exists.")
        os.rename(source, target)
        log.info(f"Renamed {self.codec.relative_to_root(source)} to {target.name}")
        return target


def copy_recursive(source: Path, target: Path):
    """
    Copies ``source`` to ``target``. When ``target`` lies inside ``source``
    the freshly created copy is excluded, so the copy cannot recurse into itself.
    """
    if not source.is_dir() or source.is_symlink():
        shutil.copy2(source, target, follow_symlinks=False)
        return

    target_str = os.path.normpath(str(target))

    def _skip_target(directory, names):
        return {n for n in names if os.path.normpath(os.path.join(directory, n)) == target_str}

    shutil.copytree(source, target, symlinks=True, ignore=_skip_target)
