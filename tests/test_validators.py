from budget_engine import validators


def test_validate_amount():
    assert validators.validate_amount('12.50').value == 12.5
    assert validators.validate_amount('12,5').valid
    assert not validators.validate_amount('abc').valid
    assert not validators.validate_amount(-1).valid
    assert not validators.validate_amount(2_000_000).valid
    assert not validators.validate_amount('1.234').valid
    assert not validators.validate_amount('').valid


def test_validate_quantity():
    assert validators.validate_quantity(3).value == 3.0
    assert not validators.validate_quantity(0).valid
    assert not validators.validate_quantity(10_001).valid
    assert not validators.validate_quantity('x').valid


def test_validate_date_window():
    today = '2026-02-12'
    assert validators.validate_date('2026-02-01', today).value == '2026-02-01'
    assert validators.validate_date('02/01/2026', today).value == '2026-02-01'
    assert not validators.validate_date('', today).valid
    assert not validators.validate_date('2026-02-30', today).valid
    assert not validators.validate_date('2015-01-01', today).valid
    assert not validators.validate_date('2031-03-01', today).valid


def test_validate_category_name():
    result = validators.validate_category_name('  Food ')
    assert result.valid and result.value == 'Food'
    assert not validators.validate_category_name('a').valid
    assert not validators.validate_category_name('x' * 51).valid
    assert not validators.validate_category_name(None).valid


def test_goal_fields():
    assert validators.validate_priority('1').value == 1
    assert not validators.validate_priority(4).valid
    assert not validators.validate_target_amount(0).valid
    assert validators.validate_target_amount('150').value == 150.0
    assert not validators.validate_goal_name('   ').valid
