from printhub.services.tracking_codes import (
    generate_tracking_code,
    normalize_tracking_code,
    to_base36,
    tracking_code_pattern,
)


def test_codes_match_the_prefixed_uppercase_pattern():
    pattern = tracking_code_pattern("PH")
    for _ in range(50):
        code = generate_tracking_code("PH")
        assert pattern.match(code), code
        assert code == code.upper()


def test_prefix_is_uppercased():
    assert generate_tracking_code("ab").startswith("AB-")


def test_same_millisecond_codes_differ():
    codes = {generate_tracking_code("PH", now_ms=1_700_000_000_000) for _ in range(200)}
    assert len(codes) == 200
    # the time part is shared, only the random suffix varies
    assert len({c[3:7] for c in codes}) == 1


def test_time_part_is_padded_for_small_clocks():
    code = generate_tracking_code("PH", now_ms=35)
    assert code[3:7] == "000Z"


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


def test_normalize():
    assert normalize_tracking_code("  ph-abc12xyz9 ") == "PH-ABC12XYZ9"
    assert normalize_tracking_code("") == ""
