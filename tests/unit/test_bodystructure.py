"""Pruebas de la normalización de BODYSTRUCTURE."""

from fakes import attachment_part, multipart, single, text_part
from infrastructure.email.bodystructure import parse_bodystructure


def test_single_part_message_is_part_one() -> None:
    root = parse_bodystructure(single(text_part()))

    assert root.part_id == "1"
    assert root.mime_type == "text/plain"
    assert root.encoding == "7BIT"
    assert root.size == 12
    assert root.params == {"charset": "utf-8"}
    assert not root.is_multipart


def test_mixed_message_numbers_children() -> None:
    structure = multipart(b"MIXED", text_part(), attachment_part("report.pdf", size=2048))

    root = parse_bodystructure(structure)

    assert root.is_multipart
    assert root.subtype == "mixed"
    assert [c.part_id for c in root.children] == ["1", "2"]
    att = root.children[1]
    assert att.mime_type == "application/pdf"
    assert att.disposition == "attachment"
    assert att.disposition_params == {"filename": "report.pdf"}
    assert att.encoding == "BASE64"
    assert att.size == 2048


def test_nested_parts_get_dotted_ids() -> None:
    alternative = (text_part(), text_part(b"HTML"), b"ALTERNATIVE", (b"BOUNDARY", b"alt"), None, None, None)
    structure = multipart(b"MIXED", alternative, attachment_part("a.png", maintype=b"IMAGE", subtype=b"PNG"))

    root = parse_bodystructure(structure)

    first = root.children[0]
    assert first.is_multipart and first.subtype == "alternative"
    assert [c.part_id for c in first.children] == ["1.1", "1.2"]
    assert root.children[1].part_id == "2"


def test_encoded_filename_is_decoded() -> None:
    structure = multipart(b"MIXED", text_part(), attachment_part("=?utf-8?q?informe_a=C3=B1o.pdf?="))

    root = parse_bodystructure(structure)

    assert root.children[1].disposition_params["filename"] == "informe año.pdf"


def _pdf_with_disposition_params(*disp_params: bytes) -> tuple:
    # sin parámetro NAME: el nombre solo llega en la disposición
    return (b"APPLICATION", b"PDF", None, None, None, b"BASE64", 10, None, (b"ATTACHMENT", disp_params), None, None)


def test_rfc2231_filename_is_decoded() -> None:
    structure = multipart(b"MIXED", text_part(), _pdf_with_disposition_params(b"FILENAME*", b"utf-8''informe%20a%C3%B1o.pdf"))

    root = parse_bodystructure(structure)

    assert root.children[1].disposition_params == {"filename": "informe año.pdf"}


def test_rfc2231_continuations_are_joined_in_order() -> None:
    part = _pdf_with_disposition_params(
        b"FILENAME*1*", b"me%20a%C3%B1o.pdf",
        b"FILENAME*0*", b"utf-8'es'infor",
        b"SIZE", b"10",
    )

    root = parse_bodystructure(multipart(b"MIXED", text_part(), part))

    assert root.children[1].disposition_params == {"filename": "informe año.pdf", "size": "10"}


def test_plain_continuations_without_charset() -> None:
    part = _pdf_with_disposition_params(b"FILENAME*0", b"very-long-", b"FILENAME*1", b"name.pdf")

    root = parse_bodystructure(multipart(b"MIXED", text_part(), part))

    assert root.children[1].disposition_params["filename"] == "very-long-name.pdf"
