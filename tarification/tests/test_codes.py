from tarification.utils.codes import MAX_CODE_LENGTH, derive_code, fallback_code, normalize_code


def test_normalize_code_folds_accents_and_symbols():
    assert normalize_code('Défense & Recours') == 'DEFENSE_RECOURS'
    assert normalize_code('  vol à mains armées ') == 'VOL_A_MAINS_ARMEES'
    assert normalize_code('--Pick-up  Pro--') == 'PICK_UP_PRO'


def test_normalize_code_limits_length():
    code = normalize_code('x' * 50)
    assert len(code) == MAX_CODE_LENGTH


def test_normalize_code_empty():
    assert normalize_code(None) == ''
    assert normalize_code('***') == ''


def test_derive_code_uses_name_when_free():
    assert derive_code('Bris de glaces', {'RC'}) == 'BRIS_DE_GLACES'


def test_derive_code_falls_back_when_taken():
    code = derive_code('Incendie', {'INCENDIE'})
    assert code.startswith('INCENDIE_')
    assert code != 'INCENDIE'
    assert len(code) <= MAX_CODE_LENGTH


def test_fallback_code_for_empty_name():
    code = derive_code('', set())
    assert code.startswith('CODE_')


def test_fallback_code_stays_within_limit():
    code = fallback_code('A' * 40)
    assert len(code) <= MAX_CODE_LENGTH
    assert normalize_code(code) == code
