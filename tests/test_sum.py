import pytest

from polyexpr import Constant, Product, Sum, Variable

x, y, z = Variable("x"), Variable("y"), Variable("z")


@pytest.fixture
def s():
    return Sum(x, y)


class TestAddExpr:
    def test_zero_is_absorbed(self, s):
        assert s.add_expr(Constant(0)) is s

    def test_equal_sum_doubles_both_terms(self, s):
        assert str(s.add_expr(Sum(x, y))) == "(x)*(2) + (y)*(2)"

    def test_equal_left_term_doubles(self, s):
        assert str(s.add_expr(x)) == "(x)*(2) + y"

    def test_equal_right_term_doubles(self, s):
        assert str(s.add_expr(y)) == "x + (y)*(2)"

    def test_new_term_appended(self, s):
        result = s.add_expr(z)
        assert result.left is s
        assert str(result) == "x + y + z"


class TestMultiplyExpr:
    def test_zero_and_one(self, s):
        assert s.multiply_expr(Constant(0)) == Constant(0)
        assert s.multiply_expr(Constant(1)) is s

    def test_no_distribution(self, s):
        result = s.multiply_expr(z)
        assert isinstance(result, Product)
        assert str(result) == "(x + y)*(z)"


class TestPrepend:
    def test_add_variable(self, s):
        assert str(s.add_variable("z")) == "z + x + y"

    def test_multiply_variable(self, s):
        assert str(s.multiply_variable("z")) == "(z)*(x + y)"

    def test_add_constant_merges_left(self):
        assert str(Sum(Constant(3), x).add_constant(3)) == "6 + x"

    def test_add_constant_merges_right(self):
        assert str(Sum(x, Constant(3)).add_constant(3)) == "x + 6"

    def test_add_constant_prepends(self, s):
        assert str(s.add_constant(2)) == "2 + x + y"
        assert s.add_constant(0) is s


class TestAppendCoefficient:
    def test_zero_and_one(self, s):
        assert s.append_coefficient(0) == Constant(0)
        assert s.append_coefficient(1) is s

    def test_distributes(self, s):
        result = s.append_coefficient(3)
        assert str(result) == "(3)*(x) + (3)*(y)"
        assert result == x.append_coefficient(3).add_expr(y.append_coefficient(3))

    def test_distribution_folds_constants(self):
        assert str(Sum(Constant(2), x).append_coefficient(3)) == "6 + (3)*(x)"

    def test_distribution_retriggers_merging(self):
        assert str(Sum(x, x).append_coefficient(2)) == "((2)*(x))*(2)"


class TestEquality:
    def test_grouping_insensitive(self):
        a = Sum(Sum(x, y), z)
        b = Sum(x, Sum(y, z))
        assert a == b
        assert hash(a) == hash(b)

    def test_order_sensitive(self):
        assert Sum(x, y) != Sum(y, x)

    def test_not_equal_to_product(self):
        assert Sum(x, y) != Product(x, y)

    def test_operands_must_be_expressions(self):
        with pytest.raises(TypeError):
            Sum(x, "y")
