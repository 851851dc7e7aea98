from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, conint, confloat, constr, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from enum import Enum


def _normalize_enum_key(value: str) -> str:
    return value.strip().upper().replace('-', '_').replace(' ', '_')


def _lookup_member(enum_cls, value, aliases: Dict[str, str]):
    if not isinstance(value, str):
        return None
    key = _normalize_enum_key(value)
    key = aliases.get(key, key)
    for member in enum_cls:
        if member.value == key or member.name == key:
            return member
    return None


class GuaranteeCategory(str, Enum):
    RESPONSABILITE_CIVILE = 'RESPONSABILITE_CIVILE'
    DEFENSE_RECOURS = 'DEFENSE_RECOURS'
    INDIVIDUELLE_CONDUCTEUR = 'INDIVIDUELLE_CONDUCTEUR'
    INDIVIDUELLE_PASSAGERS = 'INDIVIDUELLE_PASSAGERS'
    INCENDIE = 'INCENDIE'
    VOL = 'VOL'
    VOL_MAINS_ARMEES = 'VOL_MAINS_ARMEES'
    BRIS_GLACES = 'BRIS_GLACES'
    TIERCE_COMPLETE = 'TIERCE_COMPLETE'
    TIERCE_COLLISION = 'TIERCE_COLLISION'
    ASSISTANCE = 'ASSISTANCE'
    AVANCE_RECOURS = 'AVANCE_RECOURS'
    ACCESSOIRES = 'ACCESSOIRES'

    @classmethod
    def _missing_(cls, value):
        return _lookup_member(cls, value, {})


class CalculationMethod(str, Enum):
    FREE = 'FREE'
    FIXED_AMOUNT = 'FIXED_AMOUNT'
    RATE_ON_CURRENT_VALUE = 'RATE_ON_CURRENT_VALUE'
    RATE_ON_NEW_VALUE = 'RATE_ON_NEW_VALUE'
    CIVIL_LIABILITY_TARIFF = 'CIVIL_LIABILITY_TARIFF'
    COLLISION_MATRIX = 'COLLISION_MATRIX'
    INJURY_FORMULA = 'INJURY_FORMULA'
    CONDITIONAL_RATE = 'CONDITIONAL_RATE'

    @classmethod
    def _missing_(cls, value):
        return _lookup_member(cls, value, LEGACY_METHOD_NAMES)


# Names used by older catalog records
LEGACY_METHOD_NAMES = {
    'RATE_ON_SI': 'RATE_ON_CURRENT_VALUE',
    'MTPL_TARIFF': 'CIVIL_LIABILITY_TARIFF',
    'TCM_TCL_MATRIX': 'COLLISION_MATRIX',
    'IC_IPT_FORMULA': 'INJURY_FORMULA',
}


class CoverageKind(str, Enum):
    DRIVER = 'IC'
    PASSENGER = 'IPT'

    @classmethod
    def _missing_(cls, value):
        return _lookup_member(cls, value, {})


class CollisionKind(str, Enum):
    FULL_COLLISION = 'TIERCE_COMPLETE'
    IDENTIFIED_COLLISION = 'TIERCE_COLLISION'

    @classmethod
    def _missing_(cls, value):
        return _lookup_member(cls, value, {'TCM': 'TIERCE_COMPLETE', 'TCL': 'TIERCE_COLLISION'})


class PricingMode(str, Enum):
    PACK = 'PACK'
    TAILOR_MADE = 'TAILOR_MADE'

    @classmethod
    def _missing_(cls, value):
        return _lookup_member(cls, value, {'PACKAGE': 'PACK'})


def _enum_input(enum_cls):
    """Routes raw strings through the enum constructor so legacy names are accepted."""
    return BeforeValidator(lambda value: enum_cls(value) if isinstance(value, str) else value)


CategoryField = Annotated[GuaranteeCategory, _enum_input(GuaranteeCategory)]
MethodField = Annotated[CalculationMethod, _enum_input(CalculationMethod)]
CoverageKindField = Annotated[CoverageKind, _enum_input(CoverageKind)]
CollisionKindField = Annotated[CollisionKind, _enum_input(CollisionKind)]
PricingModeField = Annotated[PricingMode, _enum_input(PricingMode)]


CATEGORY_LABELS = {
    GuaranteeCategory.RESPONSABILITE_CIVILE: 'Responsabilité Civile',
    GuaranteeCategory.DEFENSE_RECOURS: 'Défense et Recours',
    GuaranteeCategory.INDIVIDUELLE_CONDUCTEUR: 'Individuelle Conducteur',
    GuaranteeCategory.INDIVIDUELLE_PASSAGERS: 'Individuelle Passagers',
    GuaranteeCategory.INCENDIE: 'Incendie',
    GuaranteeCategory.VOL: 'Vol',
    GuaranteeCategory.VOL_MAINS_ARMEES: 'Vol à mains armées',
    GuaranteeCategory.BRIS_GLACES: 'Bris de glaces',
    GuaranteeCategory.TIERCE_COMPLETE: 'Tierce Complète',
    GuaranteeCategory.TIERCE_COLLISION: 'Tierce Collision',
    GuaranteeCategory.ASSISTANCE: 'Assistance',
    GuaranteeCategory.AVANCE_RECOURS: 'Avance sur recours',
    GuaranteeCategory.ACCESSOIRES: 'Accessoires',
}

METHOD_LABELS = {
    CalculationMethod.FREE: 'Gratuit',
    CalculationMethod.FIXED_AMOUNT: 'Montant fixe',
    CalculationMethod.RATE_ON_CURRENT_VALUE: 'Taux sur valeur vénale',
    CalculationMethod.RATE_ON_NEW_VALUE: 'Taux sur valeur neuve',
    CalculationMethod.CIVIL_LIABILITY_TARIFF: 'Grille Responsabilité Civile',
    CalculationMethod.COLLISION_MATRIX: 'Matrice Tierce',
    CalculationMethod.INJURY_FORMULA: 'Formule IC/IPT',
    CalculationMethod.CONDITIONAL_RATE: 'Taux conditionnel',
}

COLLISION_KIND_BY_CATEGORY = {
    GuaranteeCategory.TIERCE_COMPLETE: CollisionKind.FULL_COLLISION,
    GuaranteeCategory.TIERCE_COLLISION: CollisionKind.IDENTIFIED_COLLISION,
}

COVERAGE_KIND_BY_CATEGORY = {
    GuaranteeCategory.INDIVIDUELLE_CONDUCTEUR: CoverageKind.DRIVER,
    GuaranteeCategory.INDIVIDUELLE_PASSAGERS: CoverageKind.PASSENGER,
}


def category_labels() -> List[Dict[str, str]]:
    return [{'value': c.value, 'label': label} for c, label in CATEGORY_LABELS.items()]


def calculation_method_labels() -> List[Dict[str, str]]:
    return [{'value': m.value, 'label': label} for m, label in METHOD_LABELS.items()]


class CamelModel(BaseModel):
    """Snake_case fields that also accept (and can emit) camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Conditional rate ---

class RateCondition(BaseModel):
    field: str
    operator: Literal['<=', '>=', '<', '>', '=']
    threshold: int


# --- Method parameters (one variant per calculation method) ---

class FreeParameters(CamelModel):
    method: Literal['FREE'] = 'FREE'


class FixedAmountParameters(CamelModel):
    method: Literal['FIXED_AMOUNT'] = 'FIXED_AMOUNT'
    amount: Optional[confloat(ge=0)] = Field(
        None, validation_alias=AliasChoices('amount', 'fixedAmount', 'fixed_amount'))
    reduced_bundle_price: Optional[confloat(ge=0)] = Field(
        None, validation_alias=AliasChoices(
            'reduced_bundle_price', 'reducedBundlePrice', 'packPriceReduced', 'pack_price_reduced'))


class RateOnCurrentValueParameters(CamelModel):
    method: Literal['RATE_ON_CURRENT_VALUE'] = 'RATE_ON_CURRENT_VALUE'


class RateOnNewValueParameters(CamelModel):
    method: Literal['RATE_ON_NEW_VALUE'] = 'RATE_ON_NEW_VALUE'


class CivilLiabilityParameters(CamelModel):
    method: Literal['CIVIL_LIABILITY_TARIFF'] = 'CIVIL_LIABILITY_TARIFF'


class CollisionMatrixParameters(CamelModel):
    method: Literal['COLLISION_MATRIX'] = 'COLLISION_MATRIX'


class InjuryFormulaParameters(CamelModel):
    method: Literal['INJURY_FORMULA'] = 'INJURY_FORMULA'


class ConditionalRateParameters(CamelModel):
    method: Literal['CONDITIONAL_RATE'] = 'CONDITIONAL_RATE'
    condition: Optional[RateCondition] = None
    raw_condition: Optional[str] = None
    rate_if_true: Optional[float] = None
    rate_if_false: Optional[float] = None

    @model_validator(mode='before')
    @classmethod
    def parse_legacy_condition(cls, data: Any) -> Any:
        """Legacy records carry the condition as text such as 'venale <= 25000000'."""
        if isinstance(data, dict) and isinstance(data.get('condition'), str):
            from tarification.services.calculations.condition_evaluator import parse_condition

            data = dict(data)
            text = data['condition']
            parsed = parse_condition(text)
            data['raw_condition'] = text
            data['condition'] = parsed.model_dump() if parsed else None
        return data


MethodParameters = Annotated[
    Union[
        FreeParameters,
        FixedAmountParameters,
        RateOnCurrentValueParameters,
        RateOnNewValueParameters,
        CivilLiabilityParameters,
        CollisionMatrixParameters,
        InjuryFormulaParameters,
        ConditionalRateParameters,
    ],
    Field(discriminator='method'),
]

PARAMETER_MODELS = {
    CalculationMethod.FREE: FreeParameters,
    CalculationMethod.FIXED_AMOUNT: FixedAmountParameters,
    CalculationMethod.RATE_ON_CURRENT_VALUE: RateOnCurrentValueParameters,
    CalculationMethod.RATE_ON_NEW_VALUE: RateOnNewValueParameters,
    CalculationMethod.CIVIL_LIABILITY_TARIFF: CivilLiabilityParameters,
    CalculationMethod.COLLISION_MATRIX: CollisionMatrixParameters,
    CalculationMethod.INJURY_FORMULA: InjuryFormulaParameters,
    CalculationMethod.CONDITIONAL_RATE: ConditionalRateParameters,
}


def _field_keys(name: str, info) -> set:
    keys = {name}
    if info.alias:
        keys.add(info.alias)
    if isinstance(info.validation_alias, AliasChoices):
        keys.update(c for c in info.validation_alias.choices if isinstance(c, str))
    elif isinstance(info.validation_alias, str):
        keys.add(info.validation_alias)
    return keys


def _accepted_keys(model_cls) -> set:
    keys = set()
    for name, info in model_cls.model_fields.items():
        keys |= _field_keys(name, info)
    return keys


def canonical_parameters(method: 'CalculationMethod', params: Dict[str, Any]) -> Dict[str, Any]:
    """Renames aliased parameter keys ('packPriceReduced', 'rateIfTrue'...) to field names."""
    names = {}
    for name, info in PARAMETER_MODELS[CalculationMethod(method)].model_fields.items():
        for key in _field_keys(name, info):
            names[key] = name
    return {names.get(key, key): value for key, value in params.items()}


# --- Catalog records ---

class Guarantee(CamelModel):
    id: str
    name: constr(strip_whitespace=True, min_length=1)
    code: constr(strip_whitespace=True, max_length=32)
    category: CategoryField
    description: str = ''
    calculation_method: MethodField
    is_optional: bool = True
    is_active: bool = True
    rate: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    parameters: MethodParameters
    extras: Dict[str, Any] = Field(default_factory=dict)
    franchise_options: List[float] = Field(default_factory=list)
    conditions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def split_parameters(cls, data: Any) -> Any:
        """
        Turns the loose parameter bag of a record into the variant of its
        calculation method. Keys the variant does not know move to `extras`;
        parameters tagged for another method (left over after a method change)
        are discarded.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_method = data.get('calculation_method', data.get('calculationMethod'))
        try:
            method = CalculationMethod(raw_method)
        except ValueError:
            return data

        params = data.get('parameters')
        if isinstance(params, BaseModel):
            params = params.model_dump()
        params = dict(params or {})
        if params.get('method') not in (None, method.value):
            params = {}
        params['method'] = method.value

        known = _accepted_keys(PARAMETER_MODELS[method])
        extras = dict(data.get('extras') or {})
        for key in list(params):
            if key not in known:
                extras[key] = params.pop(key)

        data['parameters'] = params
        data['extras'] = extras
        return data


class InsurancePackage(CamelModel):
    id: str
    name: constr(strip_whitespace=True, min_length=1)
    code: constr(strip_whitespace=True, max_length=32)
    description: str = ''
    guarantees: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices('guarantees', 'guaranteeIds', 'guarantee_ids'))
    base_price: confloat(ge=0) = 0
    total_price: Optional[confloat(ge=0)] = None
    vehicle_type_restrictions: Optional[List[str]] = None
    is_popular: bool = False
    is_active: bool = True
    conditions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @model_validator(mode='after')
    def default_total_price(self) -> 'InsurancePackage':
        if self.total_price is None:
            self.total_price = self.base_price
        return self


class TariffRule(BaseModel):
    """Fixed amount of a FIXED_AMOUNT guarantee, stored beside it (one per guarantee)."""
    guarantee_id: str
    amount: confloat(ge=0)
    reduced_bundle_price: Optional[confloat(ge=0)] = None
    updated_at: Optional[datetime] = None


# --- Tariff grids ---

class RcTariffRow(CamelModel):
    id: Optional[str] = None
    category: constr(strip_whitespace=True, min_length=1)
    energy: constr(strip_whitespace=True, min_length=1)
    power_min: conint(ge=0)
    power_max: conint(ge=0)
    premium: confloat(ge=0) = Field(validation_alias=AliasChoices('premium', 'prime'))

    @model_validator(mode='after')
    def check_power_range(self) -> 'RcTariffRow':
        if self.power_min > self.power_max:
            raise ValueError(f"power_min ({self.power_min}) is greater than power_max ({self.power_max})")
        return self


class InjuryTariffRow(CamelModel):
    id: Optional[str] = None
    coverage_kind: CoverageKindField = Field(validation_alias=AliasChoices('coverage_kind', 'coverageKind', 'type'))
    formula_number: conint(ge=1) = Field(validation_alias=AliasChoices('formula_number', 'formulaNumber', 'formula'))
    # 0 matches any seat count
    seat_count: conint(ge=0) = Field(0, validation_alias=AliasChoices('seat_count', 'seatCount', 'nbPlaces'))
    premium: confloat(ge=0) = Field(validation_alias=AliasChoices('premium', 'prime'))


class CollisionTariffRow(CamelModel):
    id: Optional[str] = None
    category: constr(strip_whitespace=True, min_length=1)
    guarantee_kind: CollisionKindField = Field(
        validation_alias=AliasChoices('guarantee_kind', 'guaranteeKind', 'guaranteeType'))
    new_value_min: confloat(ge=0) = Field(validation_alias=AliasChoices('new_value_min', 'newValueMin', 'valueNeufMin'))
    new_value_max: confloat(ge=0) = Field(validation_alias=AliasChoices('new_value_max', 'newValueMax', 'valueNeufMax'))
    franchise: confloat(ge=0)
    rate_percent: confloat(ge=0) = Field(validation_alias=AliasChoices('rate_percent', 'ratePercent', 'rate'))

    @model_validator(mode='after')
    def check_value_range(self) -> 'CollisionTariffRow':
        if self.new_value_min > self.new_value_max:
            raise ValueError(
                f"new_value_min ({self.new_value_min}) is greater than new_value_max ({self.new_value_max})")
        return self


class FixedTariffRow(CamelModel):
    id: Optional[str] = None
    guarantee_name: constr(strip_whitespace=True, min_length=1)
    premium: confloat(ge=0) = Field(validation_alias=AliasChoices('premium', 'prime'))
    eligibility_note: Optional[str] = Field(
        None, validation_alias=AliasChoices('eligibility_note', 'eligibilityNote', 'conditions'))
    reduced_bundle_price: Optional[confloat(ge=0)] = Field(
        None, validation_alias=AliasChoices('reduced_bundle_price', 'reducedBundlePrice', 'packPriceReduced'))


class TariffGrids(CamelModel):
    rc_rows: List[RcTariffRow] = Field(default_factory=list)
    injury_rows: List[InjuryTariffRow] = Field(default_factory=list)
    collision_rows: List[CollisionTariffRow] = Field(default_factory=list)
    fixed_rows: List[FixedTariffRow] = Field(default_factory=list)


# --- Pricing input / output ---

class VehicleValues(BaseModel):
    current: confloat(ge=0) = Field(0, validation_alias=AliasChoices('current', 'venale', 'currentValue'))
    new: confloat(ge=0) = Field(0, validation_alias=AliasChoices('new', 'neuve', 'newValue'))


class Vehicle(BaseModel):
    category_code: constr(strip_whitespace=True) = Field(
        validation_alias=AliasChoices('category_code', 'categoryCode', 'category'))
    energy: constr(strip_whitespace=True)
    fiscal_power: conint(ge=0) = Field(validation_alias=AliasChoices('fiscal_power', 'fiscalPower'))
    values: VehicleValues
    seat_count: conint(ge=0) = Field(0, validation_alias=AliasChoices('seat_count', 'seatCount', 'nbPlaces'))
    usage: Optional[str] = None


class PricingParameters(BaseModel):
    model_config = ConfigDict(extra='allow')

    chosen_franchise: Optional[confloat(ge=0)] = Field(
        None, validation_alias=AliasChoices('chosen_franchise', 'chosenFranchise', 'tierceFranchise', 'franchise'))
    chosen_formula: Optional[conint(ge=1)] = Field(
        None, validation_alias=AliasChoices('chosen_formula', 'chosenFormula', 'icIptFormula', 'formula'))


class PricingRequest(BaseModel):
    vehicle: Optional[Vehicle] = None
    mode: PricingModeField = Field(
        PricingMode.TAILOR_MADE, validation_alias=AliasChoices('mode', 'calculationMethod', 'calculation_method'))
    guarantee_ids: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices('guarantee_ids', 'guaranteeIds'))
    package_id: Optional[str] = Field(None, validation_alias=AliasChoices('package_id', 'packageId'))
    parameters: PricingParameters = Field(default_factory=PricingParameters)


class ResolvedPricingRequest(BaseModel):
    """What both selection modes resolve to before pricing."""
    guarantees: List[Guarantee] = Field(default_factory=list)
    base_price: float = 0
    package: Optional[InsurancePackage] = None
    bundle_pricing: bool = False


class GuaranteePricing(CamelModel):
    guarantee: Guarantee
    base_price: float
    calculated_price: float
    method_label: str
    calculation_details: Dict[str, Any] = Field(default_factory=dict)


class PricingResult(CamelModel):
    total_base_price: float
    total_with_guarantees: float
    breakdown: List[GuaranteePricing] = Field(default_factory=list)
    selected_package: Optional[InsurancePackage] = None
    calculation_timestamp: datetime


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


# --- Catalog statistics ---

class PriceRange(BaseModel):
    min: float = 0
    max: float = 0


class GuaranteeUsage(CamelModel):
    guarantee_id: str
    guarantee_name: str
    usage_count: int


class TarificationStats(CamelModel):
    total_guarantees: int
    active_guarantees: int
    total_packages: int
    active_packages: int
    most_used_guarantees: List[GuaranteeUsage] = Field(default_factory=list)
    average_package_price: float = 0
    price_range: PriceRange = Field(default_factory=PriceRange)
