"""Property-based tests using Hypothesis.

Tests invariants of the normalization core: ZIP and address canonical forms,
confidence bounds, similarity symmetry, and duplicate grouping.
"""

import string

from hypothesis import given
from hypothesis import strategies as st

from cre_ingest.models import NormalizedPropertyRecord, RawPropertyRecord
from cre_ingest.normalization import (
    calculate_confidence,
    calculate_similarity,
    deduplicate_properties,
    find_duplicates,
    levenshtein_distance,
    normalize_address,
    normalize_property,
    normalize_zip_code,
    string_similarity,
)

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

measurements = st.one_of(
    st.none(),
    st.floats(min_value=0, max_value=1e9, allow_nan=False, allow_infinity=False),
)

short_text = st.text(alphabet=string.ascii_letters + string.digits + " .,-#", max_size=30)

raw_records = st.builds(
    RawPropertyRecord,
    id=st.from_regex(r"raw_[a-z0-9]{6}", fullmatch=True),
    source=st.sampled_from(["LoopNet", "Crexi", "RealtyRates", ""]),
    address=short_text,
    city=st.sampled_from(["Atlanta", "Decatur", ""]),
    state=st.sampled_from(["GA", "Georgia", "FL", ""]),
    zip_code=st.one_of(st.none(), st.from_regex(r"[0-9]{0,9}", fullmatch=True)),
    property_type=st.sampled_from(["Office", "Multifamily", "Warehouse", "Retail", ""]),
    listing_price=measurements,
    sqft=measurements,
)

normalized_records = raw_records.map(normalize_property)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestZipCodeProperties:
    @given(st.one_of(st.none(), st.text(max_size=20)))
    def test_always_five_digits(self, zip_code: str | None) -> None:
        result = normalize_zip_code(zip_code)
        assert len(result) == 5
        assert result.isdigit()

    @given(st.from_regex(r"[0-9]{5}", fullmatch=True))
    def test_five_digit_zip_unchanged(self, zip_code: str) -> None:
        assert normalize_zip_code(zip_code) == zip_code


class TestAddressProperties:
    @given(st.text(max_size=60))
    def test_canonical_shape(self, address: str) -> None:
        result = normalize_address(address)
        assert result == result.strip()
        assert "  " not in result
        assert all(c.isalnum() or c in "_ " for c in result)
        assert result == result.lower()

    @given(short_text)
    def test_case_insensitive(self, address: str) -> None:
        assert normalize_address(address.upper()) == normalize_address(address.lower())


class TestConfidenceProperties:
    @given(raw_records)
    def test_bounded(self, record: RawPropertyRecord) -> None:
        assert 0 <= calculate_confidence(record) <= 100

    @given(raw_records)
    def test_normalize_is_deterministic(self, record: RawPropertyRecord) -> None:
        assert normalize_property(record) == normalize_property(record)


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


class TestSimilarityProperties:
    @given(short_text, short_text)
    def test_levenshtein_symmetric(self, a: str, b: str) -> None:
        assert levenshtein_distance(a, b) == levenshtein_distance(b, a)

    @given(short_text, short_text)
    def test_levenshtein_bounded_by_longer_length(self, a: str, b: str) -> None:
        assert levenshtein_distance(a, b) <= max(len(a), len(b))

    @given(short_text, short_text)
    def test_string_similarity_in_unit_range(self, a: str, b: str) -> None:
        assert 0.0 <= string_similarity(a, b) <= 1.0

    @given(normalized_records, normalized_records)
    def test_record_similarity_symmetric_and_bounded(
        self, a: NormalizedPropertyRecord, b: NormalizedPropertyRecord
    ) -> None:
        forward = calculate_similarity(a, b)
        assert 0.0 <= forward <= 1.0
        assert abs(forward - calculate_similarity(b, a)) < 1e-9

    @given(normalized_records)
    def test_self_similarity_is_one(self, record: NormalizedPropertyRecord) -> None:
        assert abs(calculate_similarity(record, record) - 1.0) < 1e-9


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


class TestDeduplicationProperties:
    @given(st.lists(normalized_records, max_size=8))
    def test_groups_are_disjoint_and_non_trivial(
        self, records: list[NormalizedPropertyRecord]
    ) -> None:
        groups = find_duplicates(records, 0.85)
        seen: set[int] = set()
        for group in groups:
            assert len(group) >= 2
            for record in group:
                assert id(record) not in seen
                seen.add(id(record))

    @given(st.lists(normalized_records, max_size=8))
    def test_counts_add_up(self, records: list[NormalizedPropertyRecord]) -> None:
        result = deduplicate_properties(records, 0.85)
        grouped = sum(len(g) for g in result.groups)
        assert len(result.deduplicated) == len(records) - grouped + len(result.groups)
        assert result.removed_count == grouped - len(result.groups)

    @given(st.lists(normalized_records, max_size=8))
    def test_survivor_has_max_confidence(self, records: list[NormalizedPropertyRecord]) -> None:
        result = deduplicate_properties(records, 0.85)
        survivors = result.deduplicated[len(result.deduplicated) - len(result.groups) :]
        for survivor, group in zip(survivors, result.groups, strict=True):
            assert survivor.confidence == max(r.confidence for r in group)
            assert all(r.duplicate_group == survivor.duplicate_group for r in group)
