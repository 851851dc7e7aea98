import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from tarification.models.errors import NotFoundError, StorageError, ValidationError
from tarification.models.models import (
    CalculationMethod,
    Guarantee,
    GuaranteeCategory,
    TariffRule,
    canonical_parameters,
)
from tarification.services.storage_service import STORAGE_COLLECTIONS, StorageService
from tarification.utils.codes import derive_code, normalize_code

logger = logging.getLogger(__name__)

# Input keys that carry the amount of a fixed-amount guarantee, by priority
AMOUNT_KEYS = ('fixed_amount', 'rate')

REQUIRED_PARAMETERS = {
    CalculationMethod.COLLISION_MATRIX: ('chosen_franchise',),
    CalculationMethod.INJURY_FORMULA: ('chosen_formula',),
}


def required_parameters(guarantee: Guarantee) -> List[str]:
    """Pricing parameters a caller must supply to price this guarantee."""
    return list(REQUIRED_PARAMETERS.get(guarantee.calculation_method, ()))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def snake_keys(data: Dict) -> Dict:
    return {to_snake(key): value for key, value in data.items()}


def as_document(record) -> Dict:
    document = record.model_dump(mode='json')
    document['_id'] = record.id
    return document


def _amount_from(data: Dict):
    """(present, amount) for the first amount key found in the input."""
    for key in AMOUNT_KEYS:
        if key in data:
            return True, data[key]
    return False, None


class GuaranteeCatalogService:
    """
    Guarantee records in the catalog store, plus the one-to-one tariff rule
    that holds the amount of fixed-amount guarantees. Writes touching both
    records undo the first write when the second one fails.
    """

    def __init__(self, storage_service: StorageService, clock: Callable[[], datetime] = utc_now):
        self.storage_service = storage_service
        self.clock = clock

    # --- reads ---

    def _rules_by_guarantee(self) -> Dict[str, Dict]:
        return {r['_id']: r for r in self.storage_service.find({}, STORAGE_COLLECTIONS.TARIFF_RULES)}

    def _to_guarantee(self, document: Dict, rule: Optional[Dict]) -> Guarantee:
        guarantee = Guarantee.model_validate(document)
        if rule and guarantee.calculation_method == CalculationMethod.FIXED_AMOUNT:
            # The rule wins over any stale amount kept on the guarantee itself
            guarantee.parameters.amount = rule.get('amount')
            if rule.get('reduced_bundle_price') is not None:
                guarantee.parameters.reduced_bundle_price = rule['reduced_bundle_price']
        return guarantee

    def get_guarantee(self, guarantee_id: str) -> Optional[Guarantee]:
        """Gets a guarantee by id, None when it does not exist."""
        document = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.GUARANTEES)
        if document is None:
            return None
        rule = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.TARIFF_RULES)
        return self._to_guarantee(document, rule)

    def list_guarantees(self) -> List[Guarantee]:
        rules = self._rules_by_guarantee()
        documents = self.storage_service.find({}, STORAGE_COLLECTIONS.GUARANTEES)
        return [self._to_guarantee(d, rules.get(d['_id'])) for d in documents]

    def list_guarantees_by_category(self, category: GuaranteeCategory) -> List[Guarantee]:
        """Gets the active guarantees of one category."""
        category = GuaranteeCategory(category)
        return [g for g in self.list_guarantees() if g.category == category and g.is_active]

    # --- writes ---

    def _taken_codes(self, exclude_id: str = None) -> set:
        return {d.get('code') for d in self.storage_service.find({}, STORAGE_COLLECTIONS.GUARANTEES)
                if d['_id'] != exclude_id}

    def _explicit_code(self, code: str, exclude_id: str = None) -> str:
        normalized = normalize_code(code)
        if normalized in self._taken_codes(exclude_id):
            raise ValidationError(f"Guarantee code '{normalized}' is already used")
        return normalized

    def _validate(self, data: Dict) -> Guarantee:
        try:
            return Guarantee.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid guarantee: {e}") from e

    def _build_rule(self, guarantee: Guarantee) -> Optional[TariffRule]:
        if guarantee.calculation_method != CalculationMethod.FIXED_AMOUNT or guarantee.parameters.amount is None:
            return None
        return TariffRule(
            guarantee_id=guarantee.id,
            amount=guarantee.parameters.amount,
            reduced_bundle_price=guarantee.parameters.reduced_bundle_price,
            updated_at=guarantee.updated_at,
        )

    def _save_rule(self, rule: TariffRule):
        document = rule.model_dump(mode='json')
        document['_id'] = rule.guarantee_id
        self.storage_service.insert_one(document, STORAGE_COLLECTIONS.TARIFF_RULES)

    def create_guarantee(self, data: Dict) -> Guarantee:
        """
        Creates a guarantee. Without an explicit code one is derived from the
        name, falling back to a generated code when empty or already taken.
        """
        data = snake_keys(data)
        data['id'] = data.get('id') or f"guar-{uuid.uuid4().hex[:12]}"
        if normalize_code(data.get('code')):
            data['code'] = self._explicit_code(data['code'])
        else:
            data['code'] = derive_code(data.get('name', ''), self._taken_codes())
        now = self.clock()
        data['created_at'] = now
        data['updated_at'] = now

        guarantee = self._validate(data)
        has_amount, amount = _amount_from(data)
        if guarantee.calculation_method == CalculationMethod.FIXED_AMOUNT and has_amount and amount is not None:
            guarantee.parameters.amount = float(amount)

        self.storage_service.insert_one(as_document(guarantee), STORAGE_COLLECTIONS.GUARANTEES)
        rule = self._build_rule(guarantee)
        if rule is not None:
            try:
                self._save_rule(rule)
            except StorageError:
                logger.error(f"Tariff rule write failed, removing guarantee {guarantee.id}")
                self._undo(lambda: self.storage_service.delete_one({'_id': guarantee.id}, STORAGE_COLLECTIONS.GUARANTEES))
                raise
        logger.info(f"Guarantee {guarantee.id} ({guarantee.code}) created")
        return guarantee

    def update_guarantee(self, guarantee_id: str, partial: Dict) -> Guarantee:
        """
        Applies a partial update. Parameters are merged while the calculation
        method stays the same and rebuilt when it changes. The tariff rule
        follows: upserted for an amount, deleted when the amount is cleared or
        the method is no longer fixed-amount.
        """
        snapshot = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.GUARANTEES)
        if snapshot is None:
            raise NotFoundError("Guarantee", guarantee_id)
        old_rule = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.TARIFF_RULES)
        current = self._to_guarantee(snapshot, old_rule)

        partial = snake_keys(partial)
        merged = current.model_dump()
        merged.update({k: v for k, v in partial.items() if k not in ('id', 'created_at', 'parameters')})
        new_method = current.calculation_method
        if 'calculation_method' in partial:
            try:
                new_method = CalculationMethod(partial['calculation_method'])
            except ValueError as e:
                raise ValidationError(f"Unknown calculation method: {partial['calculation_method']!r}") from e
        if new_method != current.calculation_method:
            merged['parameters'] = dict(partial.get('parameters') or {})
        else:
            changes = canonical_parameters(new_method, dict(partial.get('parameters') or {}))
            merged['parameters'] = {**current.parameters.model_dump(), **changes}
        if 'code' in partial:
            merged['code'] = self._explicit_code(partial['code'], exclude_id=guarantee_id)
        merged['id'] = guarantee_id
        merged['updated_at'] = self.clock()

        updated = self._validate(merged)
        has_amount, amount = _amount_from(partial)
        if updated.calculation_method == CalculationMethod.FIXED_AMOUNT and has_amount:
            updated.parameters.amount = None if amount is None else float(amount)

        self.storage_service.insert_one(as_document(updated), STORAGE_COLLECTIONS.GUARANTEES)
        rule = self._build_rule(updated)
        try:
            if rule is not None:
                self._save_rule(rule)
            elif old_rule is not None:
                self.storage_service.delete_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.TARIFF_RULES)
        except StorageError:
            logger.error(f"Tariff rule write failed, restoring guarantee {guarantee_id}")
            self._undo(lambda: self.storage_service.insert_one(snapshot, STORAGE_COLLECTIONS.GUARANTEES))
            raise
        logger.info(f"Guarantee {guarantee_id} updated")
        return updated

    def delete_guarantee(self, guarantee_id: str):
        snapshot = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.GUARANTEES)
        if snapshot is None:
            raise NotFoundError("Guarantee", guarantee_id)
        rule = self.storage_service.find_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.TARIFF_RULES)
        if rule is not None:
            self.storage_service.delete_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.TARIFF_RULES)
        try:
            self.storage_service.delete_one({'_id': guarantee_id}, STORAGE_COLLECTIONS.GUARANTEES)
        except StorageError:
            if rule is not None:
                logger.error(f"Guarantee delete failed, restoring tariff rule of {guarantee_id}")
                self._undo(lambda: self.storage_service.insert_one(rule, STORAGE_COLLECTIONS.TARIFF_RULES))
            raise
        logger.info(f"Guarantee {guarantee_id} deleted")

    def toggle_guarantee_active(self, guarantee_id: str) -> Guarantee:
        """Flips is_active."""
        current = self.get_guarantee(guarantee_id)
        if current is None:
            raise NotFoundError("Guarantee", guarantee_id)
        changes = {'is_active': not current.is_active, 'updated_at': self.clock()}
        self.storage_service.update_one(
            {'_id': guarantee_id},
            {'is_active': changes['is_active'], 'updated_at': changes['updated_at'].isoformat()},
            STORAGE_COLLECTIONS.GUARANTEES,
        )
        return current.model_copy(update=changes)

    def _undo(self, action: Callable[[], object]):
        try:
            action()
        except StorageError as e:
            logger.error(f"Compensation failed, catalog may be inconsistent: {e}", exc_info=True)
