from py_shared.citations import (
    count_citations,
    extract_citations,
    find_uncited_sentences,
    is_valid_citation,
    parse_citation,
    validate_all_citations,
)


def test_extract_citations_collapses_duplicates() -> None:
    text = (
        "Momentum is conserved [NCERT:phy_11_ch5:sec_3]. "
        "See also [PYQ:JEE-MAIN:2023:APR:42] and again [NCERT:phy_11_ch5:sec_3]."
    )
    assert extract_citations(text) == ["NCERT:phy_11_ch5:sec_3", "PYQ:JEE-MAIN:2023:APR:42"]
    assert count_citations(text) == 2


def test_well_formed_tokens_round_trip() -> None:
    tokens = {"NCERT:bio_12_ch2:2.1", "PYQ:NEET:2022:MAY:7", "NCERT:chem-11:intro"}
    text = " ; ".join(f"[{token}]" for token in sorted(tokens))
    assert set(extract_citations(text)) == tokens


def test_pyq_slot_must_be_known() -> None:
    assert extract_citations("PYQ:JEE:2021:DEC:3") == []
    assert is_valid_citation("PYQ:JEE:2021:DEC:3") is False


def test_is_valid_citation_requires_exact_token() -> None:
    assert is_valid_citation("NCERT:phy_11_ch5:5.3")
    assert not is_valid_citation("see NCERT:phy_11_ch5:5.3")
    assert not is_valid_citation("NCERT:phy 11:5.3")


def test_parse_citation() -> None:
    parsed = parse_citation("PYQ:JEE-ADV:2020:SEP:15")
    assert parsed is not None
    assert parsed.type == "PYQ"
    assert parsed.parts == {"exam": "JEE-ADV", "year": "2020", "slot": "SEP", "qid": "15"}
    ncert = parse_citation("NCERT:phy_11_ch5:5.3")
    assert ncert is not None and ncert.parts == {"doc_id": "phy_11_ch5", "section": "5.3"}
    assert parse_citation("nonsense") is None


def test_find_uncited_sentences() -> None:
    text = (
        "Inertia is resistance to change in motion [NCERT:phy_9_ch9:sec_1]. "
        "Momentum is mass times velocity. "
        "Samajh me aaya? "
        "Ok"
    )
    assert find_uncited_sentences(text) == ["Momentum is mass times velocity"]


def test_validate_all_citations() -> None:
    assert validate_all_citations("[NCERT:a:b] [PYQ:JEE:2020:JAN:1]") == {"valid": True, "invalid_citations": []}
