import json

import fitz
import pytest

from fakes import FakeLanguageModel
from knowdesk.errors import ExtractionError, ModelProviderError, UnsupportedFileType
from knowdesk.models.document import FileType
from knowdesk.services.extraction import ContentExtractor, extract_text
from knowdesk.services.vision import EmptyPage, PageContent, VisionPageDescriber


def make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_plain_text_is_returned_as_is():
    assert extract_text(b"Office hours are 9am-5pm.", "txt") == "Office hours are 9am-5pm."


def test_utf8_bom_is_stripped():
    assert extract_text("﻿Bonjour".encode("utf-8"), FileType.MD) == "Bonjour"


def test_invalid_utf8_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text(b"\xff\xfe\xfa", "txt")


def test_unsupported_type_is_rejected():
    with pytest.raises(UnsupportedFileType) as exc:
        extract_text(b"data", "docx")
    assert exc.value.declared_type == "docx"


def test_type_name_and_value_are_both_accepted():
    assert extract_text(b"a", "TXT") == extract_text(b"a", "txt") == "a"


def test_html_drops_scripts_and_styles():
    html = b"""
    <html><head><title>Help</title><style>p { color: red; }</style></head>
    <body><script>track()</script><h1>Returns</h1>
    <p>Items can be returned within   30 days.</p><noscript>enable js</noscript></body></html>
    """
    text = extract_text(html, FileType.HTML)
    assert "Returns" in text
    assert "Items can be returned within   30 days." in text
    assert "track()" not in text
    assert "color: red" not in text
    assert "enable js" not in text


def test_csv_rows_are_pipe_joined():
    data = b"plan,price\nBasic, 10\n,\nPro,25\n"
    assert extract_text(data, FileType.CSV) == "plan | price\nBasic | 10\nPro | 25"


def test_json_is_pretty_printed():
    data = json.dumps({"faq": [{"q": "Refunds?", "a": "Within 30 days"}]}).encode()
    text = extract_text(data, FileType.JSON)
    assert '"q": "Refunds?"' in text
    assert text.startswith("{\n  ")


def test_invalid_json_raises():
    with pytest.raises(ExtractionError):
        extract_text(b"{not json", FileType.JSON)


def test_pdf_text_layer_is_used_without_vision():
    result = ContentExtractor().extract(make_pdf("First page", "Second page"), FileType.PDF)
    assert "--- Page 1 ---" in result.text
    assert "--- Page 2 ---" in result.text
    assert result.text.index("First page") < result.text.index("Second page")
    assert [p.page_number for p in result.pages] == [1, 2]


def test_corrupt_pdf_raises_extraction_error():
    with pytest.raises(ExtractionError):
        ContentExtractor().extract(b"%PDF-1.4 truncated garbage", FileType.PDF)


def test_pdf_uses_vision_descriptions_when_configured():
    provider = FakeLanguageModel()
    provider.page_descriptions = [
        "Pricing overview [CHART: monthly revenue by plan]",
        "Plan | Price\nBasic | 10",
    ]
    extractor = ContentExtractor(VisionPageDescriber(provider, max_pages=5, dpi=36))

    result = extractor.extract(make_pdf("one", "two"), FileType.PDF, title="Pricing")

    assert "monthly revenue" in result.text
    assert result.pages[0].has_charts
    assert result.pages[1].has_tables


def test_failed_vision_page_keeps_the_other_pages():
    provider = FakeLanguageModel()
    provider.page_descriptions = [ModelProviderError("quota exceeded"), "Second page described"]
    extractor = ContentExtractor(VisionPageDescriber(provider, dpi=36))

    result = extractor.extract(make_pdf("one", "two"), FileType.PDF)

    assert isinstance(result.pages[0], EmptyPage)
    assert isinstance(result.pages[1], PageContent)
    assert "--- Page 1 ---" in result.text
    assert "Second page described" in result.text


def test_vision_producing_nothing_falls_back_to_text_layer():
    provider = FakeLanguageModel()
    provider.page_descriptions = ["", "   "]
    extractor = ContentExtractor(VisionPageDescriber(provider, dpi=36))

    result = extractor.extract(make_pdf("alpha text", "beta text"), FileType.PDF)

    assert "alpha text" in result.text
    assert "beta text" in result.text
    assert all(isinstance(p, PageContent) for p in result.pages)


def test_pages_beyond_the_vision_limit_come_from_the_text_layer():
    provider = FakeLanguageModel()
    provider.page_descriptions = ["described page one"]
    extractor = ContentExtractor(VisionPageDescriber(provider, max_pages=1, dpi=36))

    result = extractor.extract(make_pdf("one", "plain page two"), FileType.PDF)

    assert "described page one" in result.text
    assert "plain page two" in result.text
    assert [p.page_number for p in result.pages] == [1, 2]


def test_extraction_is_deterministic():
    data = b"<html><body><h1>Hours</h1><p>9am-5pm</p></body></html>"
    assert extract_text(data, "html") == extract_text(data, "html")
