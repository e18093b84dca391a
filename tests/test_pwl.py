import io

import pytest

from camstages.pwl import Interval, PerpType, Point, Pwl


@pytest.fixture
def ramp():
    return Pwl([(0, 0), (10, 20), (20, 20)])


def test_interval_contains_and_clip():
    iv = Interval(2.0, 7.0)
    assert iv.contains(2.0) and iv.contains(7.0)
    assert not iv.contains(7.5)
    assert iv.clip(-1.0) == 2.0
    assert iv.clip(9.0) == 7.0
    assert iv.clip(3.5) == 3.5
    assert iv.length() == 5.0


def test_point_arithmetic_round_trips():
    a, b = Point(1.5, -2.0), Point(3.0, 4.0)
    assert (a + b) - b == a
    assert (a * 4.0) / 4.0 == a
    assert a.dot(a) == a.len2()
    assert b.length() == pytest.approx(b.len2() ** 0.5)


def test_from_params_reads_pairs():
    pwl = Pwl.from_params([0, 0, 10, 20])
    assert pwl.points == (Point(0, 0), Point(10, 20))


@pytest.mark.parametrize(
    "params",
    [[0, 0, 0, 1], [5, 0, 1, 1], [0, 0], [0, 0, 1]],
)
def test_from_params_rejects_bad_input(params):
    with pytest.raises(ValueError):
        Pwl.from_params(params)


def test_append_and_prepend_respect_eps(ramp):
    ramp.append(20.0, 99.0)
    assert len(ramp) == 3
    ramp.append(30.0, 5.0)
    assert ramp.points[-1] == Point(30.0, 5.0)
    ramp.prepend(0.0, 99.0)
    assert len(ramp) == 4
    ramp.prepend(-5.0, 1.0)
    assert ramp.points[0] == Point(-5.0, 1.0)


def test_domain_range_and_empty(ramp):
    assert ramp.domain() == Interval(0, 20)
    assert ramp.range() == Interval(0, 20)
    assert not ramp.empty()
    assert Pwl().empty()
    with pytest.raises(ValueError):
        Pwl().domain()


def test_eval_hits_control_points(ramp):
    for p in ramp.points:
        assert ramp.eval(p.x) == pytest.approx(p.y)
    assert ramp.eval(-10) < ramp.eval(0)


def test_eval_span_reports_span(ramp):
    value, span = ramp.eval_span(15)
    assert span == 1
    assert value == ramp.eval(15)
    assert ramp.eval(15, 0) == value


def test_eval_needs_two_points():
    with pytest.raises(ValueError):
        Pwl([(1, 1)]).eval(1)


def test_generate_lut_matches_eval(ramp):
    lut = ramp.generate_lut()
    assert len(lut) == int(ramp.domain().end) + 1
    assert all(lut[x] == pytest.approx(ramp.eval(x)) for x in range(len(lut)))
    int_lut = ramp.generate_lut(int)
    assert all(isinstance(v, int) for v in int_lut)
    assert int_lut == [int(v) for v in lut]


def test_compose_with_identity_is_unchanged():
    f = Pwl([(0, 0), (10, 20)])
    identity = Pwl([(0, 0), (100, 100)])
    assert f.compose(identity) == f


def test_compose_matches_nested_eval():
    f = Pwl([(0, 0), (10, 10)])
    g = Pwl([(0, 0), (5, 10), (10, 10)])
    h = f.compose(g)
    for x in [0, 1, 2.5, 4, 5, 6, 9, 10]:
        assert h.eval(x) == pytest.approx(g.eval(f.eval(x)))


def test_map_visits_every_point(ramp):
    seen = []
    ramp.map(lambda x, y: seen.append(Point(x, y)))
    assert tuple(seen) == ramp.points


def test_map2_visits_union_of_knots():
    a = Pwl([(0, 0), (10, 10)])
    b = Pwl([(0, 0), (5, 5), (10, 10)])
    xs = []
    Pwl.map2(a, b, lambda x, y0, y1: xs.append(x))
    assert set(xs) == {0, 5, 10}
    assert xs == sorted(xs)


def test_combine_sums_functions():
    a = Pwl([(0, 0), (10, 10)])
    b = Pwl([(0, 4), (5, 0), (10, 4)])
    total = Pwl.combine(a, b, lambda x, y0, y1: y0 + y1)
    for x in [0, 2, 5, 7, 10]:
        assert total.eval(x) == pytest.approx(a.eval(x) + b.eval(x))
    assert [p.x for p in total.points] == [0, 5, 10]


def test_match_domain_clipped(ramp):
    ramp.match_domain(Interval(-10, 30))
    assert ramp.domain() == Interval(-10, 30)
    assert ramp.points[0].y == ramp.points[1].y
    assert ramp.points[-1].y == ramp.points[-2].y


def test_match_domain_extrapolated():
    pwl = Pwl([(0, 0), (10, 10)])
    original = Pwl(pwl.points)
    pwl.match_domain(Interval(-5, 15), clip=False)
    assert pwl.eval(-5) == pytest.approx(original.eval(-5))
    assert pwl.eval(15) == pytest.approx(original.eval(15))


def test_imul_scales_y(ramp):
    before = [ramp.eval(x) for x in range(21)]
    ramp *= 3
    assert [ramp.eval(x) for x in range(21)] == pytest.approx([3 * v for v in before])


def test_invert_cases():
    flat = Pwl([(0, 0), (10, 0)])
    kind, perp, _ = flat.invert(Point(5, 3))
    assert kind is PerpType.PERPENDICULAR and perp == Point(5, 0)
    kind, perp, _ = flat.invert(Point(-5, 1))
    assert kind is PerpType.START and perp == Point(0, 0)
    kind, perp, _ = flat.invert(Point(15, 1))
    assert kind is PerpType.END and perp == Point(10, 0)
    kind, perp, _ = flat.invert(Point(5, 3), span=1)
    assert kind is PerpType.NOT_FOUND and perp is None


def test_invert_vertex():
    corner = Pwl([(0, 0), (10, 0), (10, 10)])
    kind, perp, span = corner.invert(Point(12, -2))
    assert kind is PerpType.VERTEX
    assert perp == Point(10, 0)
    assert corner.points[span] == perp


def test_invert_rejects_bad_span():
    with pytest.raises(ValueError):
        Pwl([(0, 0), (1, 1)]).invert(Point(0, 0), span=-2)


def test_debug_output(ramp):
    out = io.StringIO()
    ramp.debug(out)
    lines = out.getvalue().splitlines()
    assert lines[0] == "Pwl {"
    assert lines[-1] == "}"
    assert len(lines) == len(ramp) + 2