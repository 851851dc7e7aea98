import pytest
from pydantic import ValidationError as PydanticValidationError

from tarification.models.models import (
    CalculationMethod,
    CollisionKind,
    ConditionalRateParameters,
    CoverageKind,
    FixedAmountParameters,
    FreeParameters,
    Guarantee,
    InsurancePackage,
    PricingMode,
    PricingRequest,
    RcTariffRow,
    Vehicle,
    canonical_parameters,
)


def make_guarantee(**overrides):
    data = {'id': 'g-1', 'name': 'Test', 'code': 'TEST', 'category': 'VOL', 'calculation_method': 'FREE'}
    data.update(overrides)
    return Guarantee.model_validate(data)


@pytest.mark.parametrize('legacy,expected', [
    ('RATE_ON_SI', CalculationMethod.RATE_ON_CURRENT_VALUE),
    ('MTPL_TARIFF', CalculationMethod.CIVIL_LIABILITY_TARIFF),
    ('TCM_TCL_MATRIX', CalculationMethod.COLLISION_MATRIX),
    ('IC_IPT_FORMULA', CalculationMethod.INJURY_FORMULA),
    ('conditional_rate', CalculationMethod.CONDITIONAL_RATE),
])
def test_legacy_method_names(legacy, expected):
    assert CalculationMethod(legacy) is expected
    assert make_guarantee(calculation_method=legacy).calculation_method is expected


def test_enum_spellings():
    assert CollisionKind('Tierce Complete') is CollisionKind.FULL_COLLISION
    assert CollisionKind('TCL') is CollisionKind.IDENTIFIED_COLLISION
    assert CoverageKind('ipt') is CoverageKind.PASSENGER
    assert PricingMode('package') is PricingMode.PACK
    assert PricingMode('tailor-made') is PricingMode.TAILOR_MADE
    with pytest.raises(ValueError):
        CalculationMethod('NOT_A_METHOD')


def test_legacy_fixed_amount_record():
    guarantee = Guarantee.model_validate({
        'id': 'guar-2',
        'name': 'Défense et Recours',
        'code': 'DR',
        'category': 'DEFENSE_RECOURS',
        'calculationMethod': 'FIXED_AMOUNT',
        'isOptional': True,
        'rate': 7950,
        'parameters': {'packPriceReduced': 4240},
    })
    assert isinstance(guarantee.parameters, FixedAmountParameters)
    assert guarantee.parameters.reduced_bundle_price == 4240
    assert guarantee.parameters.amount is None
    assert guarantee.rate == 7950
    assert guarantee.extras == {}


def test_unknown_parameter_keys_move_to_extras():
    guarantee = make_guarantee(
        calculation_method='CONDITIONAL_RATE',
        parameters={'condition': 'venale <= 25000000', 'rateIfTrue': 1.1, 'color': 'blue'},
    )
    assert guarantee.extras == {'color': 'blue'}
    assert guarantee.parameters.rate_if_true == 1.1
    assert guarantee.parameters.rate_if_false is None


def test_legacy_condition_is_parsed_once():
    guarantee = make_guarantee(calculation_method='CONDITIONAL_RATE', parameters={'condition': 'venale<=25000000'})
    params = guarantee.parameters
    assert isinstance(params, ConditionalRateParameters)
    assert params.condition.operator == '<='
    assert params.condition.threshold == 25000000
    assert params.raw_condition == 'venale<=25000000'


def test_malformed_condition_keeps_raw_text():
    guarantee = make_guarantee(calculation_method='CONDITIONAL_RATE', parameters={'condition': 'venale ~ 3'})
    assert guarantee.parameters.condition is None
    assert guarantee.parameters.raw_condition == 'venale ~ 3'


def test_parameters_of_another_method_are_discarded():
    guarantee = make_guarantee(calculation_method='FREE', parameters={'method': 'FIXED_AMOUNT', 'amount': 5})
    assert isinstance(guarantee.parameters, FreeParameters)


def test_stored_document_round_trip():
    guarantee = make_guarantee(calculation_method='CONDITIONAL_RATE', parameters={'condition': 'venale <= 10'})
    assert Guarantee.model_validate(guarantee.model_dump(mode='json')) == guarantee


def test_canonical_parameters():
    assert canonical_parameters(CalculationMethod.FIXED_AMOUNT, {'packPriceReduced': 1, 'fixedAmount': 2}) == {
        'reduced_bundle_price': 1, 'amount': 2}
    assert canonical_parameters('CONDITIONAL_RATE', {'rateIfFalse': 3}) == {'rate_if_false': 3}


def test_code_longer_than_limit_is_rejected():
    with pytest.raises(PydanticValidationError):
        make_guarantee(code='X' * 33)


def test_rc_row_power_range():
    with pytest.raises(PydanticValidationError):
        RcTariffRow(category='401', energy='Essence', power_min=6, power_max=3, premium=1)
    assert RcTariffRow.model_validate({'category': '401', 'energy': 'Diesel', 'powerMin': 1, 'powerMax': 1,
                                       'prime': 68675}).premium == 68675


def test_package_total_price_defaults_to_base_price():
    package = InsurancePackage.model_validate({'id': 'p', 'name': 'P', 'code': 'P', 'guaranteeIds': ['a'],
                                               'basePrice': 1000})
    assert package.total_price == 1000
    assert package.guarantees == ['a']


def test_vehicle_legacy_aliases():
    vehicle = Vehicle.model_validate({'category': '401', 'energy': ' Diesel ', 'fiscalPower': 4,
                                      'values': {'venale': 10, 'neuve': 20}, 'nbPlaces': 5})
    assert vehicle.category_code == '401'
    assert vehicle.energy == 'Diesel'
    assert vehicle.values.current == 10
    assert vehicle.values.new == 20
    assert vehicle.seat_count == 5


def test_pricing_request_aliases():
    request = PricingRequest.model_validate({
        'calculationMethod': 'package',
        'packageId': 'pack-1',
        'parameters': {'tierceFranchise': 250000, 'icIptFormula': 2},
    })
    assert request.mode is PricingMode.PACK
    assert request.package_id == 'pack-1'
    assert request.parameters.chosen_franchise == 250000
    assert request.parameters.chosen_formula == 2
