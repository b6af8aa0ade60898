from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from trigger_engine.dal.datamodel.profile import Family, Profile, WalletList
from trigger_engine.dal.datamodel.snapshot import ProfileFamilyState, ProfilesExport
from trigger_engine.dal.snapshot_store import SnapshotPersistence
from trigger_engine.utils.helper import generate_id, generate_profile_id, now_ms
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)

PROFILE_ADAPTER: TypeAdapter[Profile] = TypeAdapter(Profile)

# export file keys, kept compatible with the dashboard's backup files
PROFILE_EXPORT_KEYS = {
    Family.SNIPER: "sniperProfiles",
    Family.COPYTRADE: "copytradeProfiles",
    Family.AUTOMATE: "strategies",
}
WALLET_LIST_EXPORT_KEYS = {
    Family.COPYTRADE: "copytradeWalletLists",
    Family.AUTOMATE: "whitelistLists",
}

IMMUTABLE_FIELDS = {"id", "family", "created_at"}
BOOKKEEPING_FIELDS = {"execution_count", "last_executed_at"}


class ProfileNotFoundError(KeyError):
    pass


class WalletListNotFoundError(KeyError):
    pass


class SnapshotImportError(ValueError):
    pass


class ProfileStore:
    """
    In-memory profile collections for the three families, backed by a snapshot persistence port.

    Mutations only mark a family dirty; `flush` writes the dirty families out.
    Ids are unique within a family and insertion order is the evaluation order.
    """

    def __init__(self, persistence: Optional[SnapshotPersistence] = None):
        self._persistence = persistence
        self._states: Dict[Family, ProfileFamilyState] = {family: ProfileFamilyState() for family in Family}
        self._dirty: set[Family] = set()

    # ---------- persistence ----------

    async def load(self) -> None:
        if self._persistence is None:
            return
        for family in Family:
            self._states[family] = await self._persistence.load_snapshot(family)
        self._dirty.clear()
        logger.info("Loaded profiles: %s", {str(f): len(s.profiles) for f, s in self._states.items()})

    async def flush(self) -> int:
        if self._persistence is None or not self._dirty:
            return 0
        saved = 0
        for family in sorted(self._dirty):
            self._dirty.discard(family)
            state = self._states[family].model_copy(deep=True)
            try:
                await self._persistence.save_snapshot(family, state)
            except Exception:
                self._dirty.add(family)
                raise
            saved += 1
        return saved

    @property
    def dirty_families(self) -> frozenset[Family]:
        return frozenset(self._dirty)

    def _mark(self, family: Family | str) -> None:
        self._dirty.add(Family(family))

    # ---------- lookup ----------

    def _families(self, family: Optional[Family | str] = None) -> List[Family]:
        return [Family(family)] if family else list(Family)

    def _locate(self, profile_id: str, family: Optional[Family | str] = None) -> Tuple[Family, int]:
        for f in self._families(family):
            for index, profile in enumerate(self._states[f].profiles):
                if profile.id == profile_id:
                    return f, index
        raise ProfileNotFoundError(profile_id)

    def _ids(self, family: Family) -> set[str]:
        return {p.id for p in self._states[family].profiles}

    def _replace(self, family: Family, index: int, profile: Profile) -> Profile:
        self._states[family].profiles[index] = profile
        self._mark(family)
        return profile

    def list_profiles(self, family: Optional[Family | str] = None) -> List[Profile]:
        return [p for f in self._families(family) for p in self._states[f].profiles]

    def active_profiles(self) -> List[Profile]:
        return [p for p in self.list_profiles() if p.is_active]

    def get(self, profile_id: str, family: Optional[Family | str] = None) -> Profile:
        f, index = self._locate(profile_id, family)
        return self._states[f].profiles[index]

    # ---------- CRUD ----------

    def add(self, profile: Profile) -> Profile:
        family = Family(profile.family)
        if profile.id in self._ids(family):
            raise ValueError(f"Profile id already exists in {family}: {profile.id}")
        self._states[family].profiles.append(profile)
        self._mark(family)
        return profile

    def update(self, profile_id: str, **changes: Any) -> Profile:
        """Merge field changes into a profile; execution bookkeeping is not editable here."""
        forbidden = (IMMUTABLE_FIELDS | BOOKKEEPING_FIELDS) & changes.keys()
        if forbidden:
            raise ValueError(f"Fields cannot be edited: {sorted(forbidden)}")

        family, index = self._locate(profile_id)
        current = self._states[family].profiles[index]
        fields = type(current).model_fields
        unknown = changes.keys() - fields.keys()
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        data = current.model_dump(by_alias=True)
        data.update({fields[name].alias or name: value for name, value in changes.items()})
        updated = type(current).model_validate(data)
        updated.touch()
        return self._replace(family, index, updated)

    def remove(self, profile_id: str) -> Profile:
        family, index = self._locate(profile_id)
        removed = self._states[family].profiles.pop(index)
        self._mark(family)
        return removed

    def toggle_active(self, profile_id: str) -> Profile:
        family, index = self._locate(profile_id)
        current = self._states[family].profiles[index]
        toggled = current.model_copy(update={"is_active": not current.is_active})
        toggled.touch()
        return self._replace(family, index, toggled)

    def duplicate(self, profile_id: str) -> Profile:
        source = self.get(profile_id)
        family = Family(source.family)
        ts = now_ms()

        data = source.model_dump(by_alias=True)
        data.update(
            id=generate_profile_id(family),
            name=f"{source.name} (Copy)",
            isActive=False,
            executionCount=0,
            lastExecutedAt=None,
            createdAt=ts,
            updatedAt=ts,
        )
        data["conditions"] = [{**c, "id": generate_id("cond")} for c in data["conditions"]]
        data["actions"] = [{**a, "id": generate_id("action")} for a in data["actions"]]
        if "filters" in data:
            data["filters"] = [{**f, "id": generate_id("sniper_filter")} for f in data["filters"]]

        copy = type(source).model_validate(data)
        self._states[family].profiles.append(copy)
        self._mark(family)
        return copy

    def reset_executions(self, profile_id: str) -> Profile:
        family, index = self._locate(profile_id)
        current = self._states[family].profiles[index]
        reset = current.model_copy(update={"execution_count": 0, "last_executed_at": None})
        reset.touch()
        return self._replace(family, index, reset)

    def record_firing(self, profile_id: str, *, family: Optional[Family | str] = None,
                      attempted_at: Optional[int] = None, succeeded: bool = False) -> Profile:
        """Execution bookkeeping, written by the evaluator only."""
        family, index = self._locate(profile_id, family)
        current = self._states[family].profiles[index]
        changes: Dict[str, Any] = {}
        if attempted_at is not None:
            changes["last_executed_at"] = max(current.last_executed_at or attempted_at, attempted_at)
        if succeeded:
            changes["execution_count"] = current.execution_count + 1
        if not changes:
            return current
        return self._replace(family, index, current.model_copy(update=changes))

    # ---------- wallet lists ----------

    def list_wallet_lists(self, family: Family | str) -> List[WalletList]:
        return list(self._states[Family(family)].wallet_lists)

    def wallet_lists_by_id(self, family: Family | str = Family.COPYTRADE) -> Dict[str, WalletList]:
        return {wl.id: wl for wl in self._states[Family(family)].wallet_lists}

    def _locate_wallet_list(self, family: Family | str, list_id: str) -> Tuple[Family, int]:
        family = Family(family)
        for index, wl in enumerate(self._states[family].wallet_lists):
            if wl.id == list_id:
                return family, index
        raise WalletListNotFoundError(list_id)

    def get_wallet_list(self, family: Family | str, list_id: str) -> WalletList:
        f, index = self._locate_wallet_list(family, list_id)
        return self._states[f].wallet_lists[index]

    def add_wallet_list(self, family: Family | str, wallet_list: WalletList) -> WalletList:
        family = Family(family)
        if wallet_list.id in self.wallet_lists_by_id(family):
            raise ValueError(f"Wallet list id already exists in {family}: {wallet_list.id}")
        self._states[family].wallet_lists.append(wallet_list)
        self._mark(family)
        return wallet_list

    def update_wallet_list(self, family: Family | str, list_id: str, *, name: Optional[str] = None,
                           addresses: Optional[List[str]] = None) -> WalletList:
        f, index = self._locate_wallet_list(family, list_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name.strip()
        if addresses is not None:
            changes["addresses"] = list(addresses)
        updated = self._states[f].wallet_lists[index].model_copy(update=changes)
        updated.touch()
        self._states[f].wallet_lists[index] = updated
        self._mark(f)
        return updated

    def remove_wallet_list(self, family: Family | str, list_id: str) -> WalletList:
        f, index = self._locate_wallet_list(family, list_id)
        removed = self._states[f].wallet_lists.pop(index)
        self._mark(f)
        return removed

    # ---------- snapshot export / import ----------

    def export_snapshot(self) -> str:
        export = ProfilesExport(
            sniper_profiles=self.list_profiles(Family.SNIPER),
            copytrade_profiles=self.list_profiles(Family.COPYTRADE),
            copytrade_wallet_lists=self.list_wallet_lists(Family.COPYTRADE),
            strategies=self.list_profiles(Family.AUTOMATE),
            whitelist_lists=self.list_wallet_lists(Family.AUTOMATE),
        )
        return export.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @staticmethod
    def _items(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        items = data.get(key)
        if items is None:
            return []
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise SnapshotImportError(f"Invalid format: '{key}' must be an array of objects")
        return items

    def import_snapshot(self, raw: str | bytes) -> Dict[str, int]:
        """
        Merge an exported snapshot into the store.
        - nothing is merged unless the whole snapshot validates
        - colliding ids get a freshly minted id instead of overwriting
        - imported profiles start inactive with zeroed execution bookkeeping
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SnapshotImportError(f"Snapshot is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotImportError("Invalid format: expected an object of profile arrays")

        try:
            incoming_lists = {
                family: [WalletList.model_validate(item) for item in self._items(data, key)]
                for family, key in WALLET_LIST_EXPORT_KEYS.items()
            }
            incoming_profiles = {
                family: [PROFILE_ADAPTER.validate_python({**item, "family": family}) for item in self._items(data, key)]
                for family, key in PROFILE_EXPORT_KEYS.items()
            }
        except ValidationError as e:
            raise SnapshotImportError(f"Invalid snapshot: {e}") from e

        remapped_lists: Dict[str, str] = {}
        for family, lists in incoming_lists.items():
            existing = self.wallet_lists_by_id(family)
            for wl in lists:
                current = existing.get(wl.id)
                if current is not None and current.name == wl.name and current.addresses == wl.addresses:
                    continue
                if current is not None:
                    new_id = generate_id("wlist")
                    if family == Family.COPYTRADE:
                        remapped_lists[wl.id] = new_id
                    wl = wl.model_copy(update={"id": new_id})
                self._states[family].wallet_lists.append(wl)
                existing[wl.id] = wl
                self._mark(family)

        counts: Dict[str, int] = {}
        for family, profiles in incoming_profiles.items():
            existing_ids = self._ids(family)
            for profile in profiles:
                changes: Dict[str, Any] = {"is_active": False, "execution_count": 0, "last_executed_at": None}
                if profile.id in existing_ids:
                    changes["id"] = generate_profile_id(family)
                if family == Family.COPYTRADE and profile.wallet_list_id in remapped_lists:
                    changes["wallet_list_id"] = remapped_lists[profile.wallet_list_id]
                imported = profile.model_copy(update=changes)
                self._states[family].profiles.append(imported)
                existing_ids.add(imported.id)
            if profiles:
                self._mark(family)
            counts[str(family)] = len(profiles)

        logger.info("Imported profiles: %s", counts)
        return counts
