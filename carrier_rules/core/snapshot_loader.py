"""Load carrier rule tables into immutable, validated rule snapshots."""

import json
import threading
import time
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Type

from pydantic import BaseModel, ValidationError

from carrier_rules.config.logging_config import get_logger
from carrier_rules.config.messages import ERROR_INVALID_CARRIER_ID, ERROR_SNAPSHOT_NOT_FOUND
from carrier_rules.config.settings import get_settings
from carrier_rules.core.errors import ConfigurationError, InvalidInputError, SnapshotNotFoundError
from carrier_rules.models.schema import (
    AcceptanceRule,
    ArticleMap,
    Carrier,
    CategoryGroup,
    ClassificationBand,
    Clause,
    ExcludedRule,
    GroupTarget,
    PortGroup,
    RuleSnapshot,
    SurchargeRule,
    TransformRule,
)
from carrier_rules.models.utils import rules_overlap, sort_rules

logger = get_logger(__name__)

# Rule tables in the order they are parsed
RULE_TABLES: Tuple[Tuple[str, Type[BaseModel]], ...] = (
    ("category_groups", CategoryGroup),
    ("port_groups", PortGroup),
    ("classification_bands", ClassificationBand),
    ("acceptance_rules", AcceptanceRule),
    ("transform_rules", TransformRule),
    ("surcharge_rules", SurchargeRule),
    ("article_maps", ArticleMap),
    ("clauses", Clause),
)

TARGETED_TABLES = ("acceptance_rules", "transform_rules", "surcharge_rules", "article_maps")


def _raw_id(row: Any) -> Optional[int]:
    if not isinstance(row, Mapping):
        return None
    try:
        return int(row.get("id"))
    except (TypeError, ValueError):
        return None


class SnapshotBuilder:
    """Build a RuleSnapshot from raw rule table rows.

    Every row is validated on its own. A misconfigured row (malformed
    params, unknown group target, orphan article map, duplicate group code,
    inverted min/max, surcharge event code repeated within an overlapping
    scope outside a shared exclusive group) is excluded, recorded in
    ``snapshot.excluded`` and logged at WARNING; the rest of the snapshot is
    still built.
    """

    def __init__(self):
        self.excluded: List[ExcludedRule] = []

    def _exclude(self, error: ConfigurationError) -> None:
        logger.warning(f"Excluding misconfigured rule {error}")
        self.excluded.append(ExcludedRule(table=error.table, rule_id=error.rule_id, reason=error.reason))

    def _parse_table(self, table: str, model: Type[BaseModel], rows: Any) -> List[Any]:
        records = []
        for row in rows or []:
            try:
                records.append(model.model_validate(row))
            except ValidationError as e:
                reason = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
                self._exclude(ConfigurationError(table, _raw_id(row), reason))
                logger.debug(f"Rule data: {row}")
        return records

    def _drop_duplicate_codes(self, groups: List[CategoryGroup]) -> List[CategoryGroup]:
        seen = set()
        kept = []
        for group in sort_rules(groups):
            if group.code in seen:
                self._exclude(ConfigurationError("category_groups", group.id, f"duplicate group code {group.code}"))
                continue
            seen.add(group.code)
            kept.append(group)
        return kept

    def _drop_unresolved_targets(self, table: str, records: List[Any], group_ids: set) -> List[Any]:
        kept = []
        for record in records:
            target = record.target
            if isinstance(target, GroupTarget) and target.group_id not in group_ids:
                self._exclude(ConfigurationError(table, record.id, f"unknown category group {target.group_id}"))
                continue
            kept.append(record)
        return kept

    def _drop_duplicate_events(
        self,
        rules: List[SurchargeRule],
        port_groups: Mapping[int, PortGroup],
        groups: Mapping[int, CategoryGroup],
    ) -> List[SurchargeRule]:
        kept: List[SurchargeRule] = []
        for rule in sort_rules(rules):
            clash = next(
                (
                    other for other in kept
                    if other.event_code == rule.event_code
                    and not (rule.exclusive_group is not None and rule.exclusive_group == other.exclusive_group)
                    and rules_overlap(rule, other, port_groups, groups)
                ),
                None,
            )
            if clash is not None:
                self._exclude(ConfigurationError(
                    "surcharge_rules", rule.id, f"duplicate event code {rule.event_code} overlaps rule {clash.id}"
                ))
                continue
            kept.append(rule)
        return kept

    def _drop_orphan_maps(self, maps: List[ArticleMap], event_codes: set) -> List[ArticleMap]:
        kept = []
        for article_map in maps:
            if article_map.event_code not in event_codes:
                self._exclude(ConfigurationError(
                    "article_maps", article_map.id, f"no surcharge rule for event code {article_map.event_code}"
                ))
                continue
            kept.append(article_map)
        return kept

    def build(self, payload: Mapping[str, Any], as_of: date, carrier_id: Optional[str] = None) -> RuleSnapshot:
        """Build the snapshot of one carrier at one date.

        Args:
            payload: Mapping with a ``carrier`` entry and one list per rule table
            as_of: Evaluation date; only active rows within their window are kept
            carrier_id: Carrier id used when the payload has no carrier id

        Returns:
            Immutable RuleSnapshot
        """
        self.excluded = []

        carrier_data = dict(payload.get("carrier") or {})
        if carrier_id is not None:
            carrier_data.setdefault("id", carrier_id)
        carrier = Carrier.model_validate(carrier_data)

        tables: Dict[str, List[Any]] = {}
        for table, model in RULE_TABLES:
            records = self._parse_table(table, model, payload.get(table))
            tables[table] = [r for r in records if r.is_effective(as_of)]

        tables["category_groups"] = self._drop_duplicate_codes(tables["category_groups"])
        group_ids = {g.id for g in tables["category_groups"]}
        for table in TARGETED_TABLES:
            tables[table] = self._drop_unresolved_targets(table, tables[table], group_ids)

        tables["surcharge_rules"] = self._drop_duplicate_events(
            tables["surcharge_rules"],
            {g.id: g for g in tables["port_groups"]},
            {g.id: g for g in tables["category_groups"]},
        )

        event_codes = {r.event_code for r in tables["surcharge_rules"]}
        tables["article_maps"] = self._drop_orphan_maps(tables["article_maps"], event_codes)

        snapshot = RuleSnapshot(
            carrier=carrier,
            as_of=as_of,
            excluded=tuple(self.excluded),
            **{table: tuple(sort_rules(records)) for table, records in tables.items()},
        )
        logger.info(
            f"Loaded rule snapshot for carrier {carrier.id} as of {as_of}: "
            f"{sum(len(records) for records in tables.values())} rules, {len(self.excluded)} excluded"
        )
        return snapshot


class RuleRepository(Protocol):
    """Source of carrier rule snapshots."""

    def load_carrier_rule_snapshot(self, carrier_id: str, as_of: date) -> RuleSnapshot:
        ...


class InMemoryRuleRepository:
    """Rule repository over raw payload mappings keyed by carrier id."""

    def __init__(self, payloads: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._payloads: Dict[str, Mapping[str, Any]] = dict(payloads or {})

    def put(self, carrier_id: str, payload: Mapping[str, Any]) -> None:
        """Replace the rule payload of a carrier."""
        self._payloads[carrier_id] = payload

    def load_carrier_rule_snapshot(self, carrier_id: str, as_of: date) -> RuleSnapshot:
        payload = self._payloads.get(carrier_id)
        if payload is None:
            raise SnapshotNotFoundError(ERROR_SNAPSHOT_NOT_FOUND.format(carrier_id=carrier_id))
        return SnapshotBuilder().build(payload, as_of, carrier_id=carrier_id)


class JsonRuleRepository:
    """Rule repository reading one ``<carrier_id>.json`` document per carrier.

    Attributes:
        rules_dir: Directory holding the carrier documents
    """

    def __init__(self, rules_dir: Optional[Path] = None):
        if rules_dir is None:
            project_dir = Path(__file__).parent.parent.parent
            rules_dir = get_settings().get_rules_dir(project_dir)
        self.rules_dir = Path(rules_dir)

    def path_for(self, carrier_id: str) -> Path:
        """Return the rule document path of a carrier.

        Raises:
            InvalidInputError: If the carrier id is empty or could leave rules_dir
        """
        if not carrier_id or carrier_id.strip(".") == "" or any(c in carrier_id for c in ("/", "\\", "\0")):
            raise InvalidInputError(ERROR_INVALID_CARRIER_ID.format(carrier_id=carrier_id))
        return self.rules_dir / f"{carrier_id}.json"

    def carrier_ids(self) -> List[str]:
        """List the carriers that have a rule document."""
        if not self.rules_dir.exists():
            return []
        return sorted(p.stem for p in self.rules_dir.glob("*.json"))

    def load_carrier_rule_snapshot(self, carrier_id: str, as_of: date) -> RuleSnapshot:
        """Load and build the snapshot of a carrier.

        Args:
            carrier_id: Carrier identifier (file stem)
            as_of: Evaluation date

        Returns:
            RuleSnapshot built from the carrier document

        Raises:
            SnapshotNotFoundError: If the carrier has no rule document
            InvalidInputError: If the carrier id is not a plain file name
        """
        path = self.path_for(carrier_id)
        if not path.exists():
            raise SnapshotNotFoundError(ERROR_SNAPSHOT_NOT_FOUND.format(carrier_id=carrier_id))

        logger.info(f"Loading carrier rules from: {path}")
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)

        return SnapshotBuilder().build(payload, as_of, carrier_id=carrier_id)


class SnapshotCache:
    """Thread-safe TTL cache of rule snapshots keyed by (carrier_id, as_of).

    Wraps another repository and exposes the same
    ``load_carrier_rule_snapshot`` call. The cache lock only guards the
    entry table; repository loads run outside it, so different carriers
    load in parallel. A per-key lock keeps concurrent callers of the same
    key down to one load. Expired entries are evicted whenever a new
    snapshot is stored. Cached snapshots are immutable, so an invalidation
    never affects an evaluation already holding one.
    """

    def __init__(
        self,
        repository: RuleRepository,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.ttl_seconds = get_settings().snapshot_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, date], Tuple[float, RuleSnapshot]] = {}
        self._key_locks: Dict[Tuple[str, date], threading.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _fresh(self, key: Tuple[str, date]) -> Optional[RuleSnapshot]:
        # Caller holds self._lock
        entry = self._entries.get(key)
        if entry is not None and entry[0] > self._clock():
            return entry[1]
        return None

    def _evict_expired(self, now: float) -> None:
        # Caller holds self._lock
        for key in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
            del self._entries[key]

    def load_carrier_rule_snapshot(self, carrier_id: str, as_of: date) -> RuleSnapshot:
        key = (carrier_id, as_of)
        with self._lock:
            snapshot = self._fresh(key)
            if snapshot is not None:
                logger.debug(f"Snapshot cache hit for {carrier_id} as of {as_of}")
                return snapshot
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            try:
                with self._lock:
                    snapshot = self._fresh(key)
                if snapshot is not None:
                    return snapshot

                snapshot = self.repository.load_carrier_rule_snapshot(carrier_id, as_of)

                with self._lock:
                    now = self._clock()
                    self._evict_expired(now)
                    self._entries[key] = (now + self.ttl_seconds, snapshot)
                return snapshot
            finally:
                with self._lock:
                    if self._key_locks.get(key) is key_lock:
                        del self._key_locks[key]

    def invalidate(self, carrier_id: Optional[str] = None) -> None:
        """Drop cached snapshots of one carrier, or of every carrier when None."""
        with self._lock:
            if carrier_id is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == carrier_id]:
                    del self._entries[key]
        logger.info(f"Snapshot cache invalidated for {carrier_id or 'all carriers'}")
