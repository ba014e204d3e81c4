import unittest
from datetime import date

from notice_crawler.errors import ParseError
from notice_crawler.extractors.board import parse_detail_page, parse_listing_page
from notice_crawler.extractors.clean import html_to_text, normalize_url, preview
from notice_crawler.schemas.models import AttachmentType, BoardLayout
from notice_crawler.tests.fakes import detail_html, listing_html

PAGE_URL = "https://board.test/notices?GotoPage=2"


class ListingParserTests(unittest.TestCase):
    def test_parses_rows_into_entries(self):
        body = listing_html(
            [
                {"no": "4521", "title": "Midterm Notice", "category": "Academic", "author": "Registrar"},
                {"no": "4520", "title": "  Library   hours ", "category": "General", "date": "2024.03.08"},
            ]
        )

        entries = parse_listing_page(body, PAGE_URL)

        self.assertEqual(len(entries), 2)
        first = entries[0]
        self.assertEqual(first.external_id, "4521")
        self.assertEqual(first.title, "Midterm Notice")
        self.assertEqual(first.category, "Academic")
        self.assertEqual(first.author, "Registrar")
        self.assertEqual(first.published, "2024-03-11")
        self.assertEqual(first.url, "https://board.test/notices?mode=V&no=4521")
        self.assertEqual(entries[1].title, "Library hours")

    def test_same_item_on_different_pages_gets_same_url(self):
        body = listing_html([{"no": "77", "title": "Pinned"}])
        first = parse_listing_page(body, "https://board.test/notices?GotoPage=1")[0]
        second = parse_listing_page(body, "https://board.test/notices?GotoPage=3")[0]
        self.assertEqual(first.url, second.url)

    def test_missing_table_is_parse_error(self):
        with self.assertRaises(ParseError):
            parse_listing_page(b"<html><body><p>Maintenance</p></body></html>", PAGE_URL)

    def test_empty_table_yields_no_entries(self):
        body = b'<table class="board_list"><tbody><tr><td colspan="7">No posts</td></tr></tbody></table>'
        self.assertEqual(parse_listing_page(body, PAGE_URL), [])

    def test_row_without_id_parameter_is_parse_error(self):
        body = listing_html([{"no": "1", "title": "x"}]).replace(b"no=1", b"id=1")
        with self.assertRaises(ParseError):
            parse_listing_page(body, PAGE_URL)

    def test_short_row_is_parse_error(self):
        body = b'<table class="board_list"><tr><td>1</td><td>Academic</td></tr></table>'
        with self.assertRaises(ParseError):
            parse_listing_page(body, PAGE_URL)

    def test_custom_layout(self):
        layout = BoardLayout(listing_table="table#list", columns={"category": 0, "title": 1, "author": 2, "date": 3})
        body = (
            b'<table id="list"><tr><td>Scholarship</td><td><a href="/view?no=9">Apply now</a></td>'
            b"<td>Office</td><td>2024/04/01</td></tr></table>"
        )
        entry = parse_listing_page(body, "https://board.test/list", layout)[0]
        self.assertEqual(entry.url, "https://board.test/view?no=9")
        self.assertEqual(entry.category, "Scholarship")

    def test_published_date_accepts_dots_and_dashes(self):
        entries = parse_listing_page(
            listing_html(
                [{"no": "1", "title": "a", "date": "2024.03.08"}, {"no": "2", "title": "b", "date": "2024-3-9"}]
            ),
            PAGE_URL,
        )
        self.assertEqual(entries[0].published_on, date(2024, 3, 8))
        self.assertEqual(entries[1].published_on, date(2024, 3, 9))

    def test_unreadable_date_is_parse_error(self):
        for bogus in ("N/A", "2024.13.40"):
            with self.subTest(date=bogus), self.assertRaises(ParseError):
                parse_listing_page(listing_html([{"no": "1", "title": "a", "date": bogus}]), PAGE_URL)


class DetailParserTests(unittest.TestCase):
    def test_extracts_body_and_attachments(self):
        body = detail_html(
            "<p>Exams start <b>Monday</b></p>",
            attachments=[
                ("schedule.hwp", "/files/1", "hwp"),
                ("grades.xlsx", "/files/2", "ico_xlsx"),
                ("slides.pptx", "/files/3", "pptx"),
                ("photos.zip", "/files/4", "zip"),
                ("misc.bin", "/files/5", "unknown"),
            ],
        )

        detail = parse_detail_page(body, "https://board.test/notices?mode=V&no=1")

        self.assertEqual(detail.body, "<p>Exams start <b>Monday</b></p>")
        self.assertEqual(
            [att.type for att in detail.attachments],
            [
                AttachmentType.DOCUMENT,
                AttachmentType.SPREADSHEET,
                AttachmentType.DOC_VARIANT,
                AttachmentType.IMAGE_BUNDLE,
                AttachmentType.OTHER,
            ],
        )
        self.assertEqual(detail.attachments[0].url, "https://board.test/files/1")
        self.assertEqual(detail.attachments[0].name, "schedule.hwp")

    def test_no_attachments(self):
        detail = parse_detail_page(detail_html("<p>Exams start Monday</p>"), "https://board.test/")
        self.assertEqual(detail.attachments, [])

    def test_missing_content_container_is_parse_error(self):
        with self.assertRaises(ParseError):
            parse_detail_page(b"<html><body><div>moved</div></body></html>", "https://board.test/")


class CleanTests(unittest.TestCase):
    def test_html_to_text_collapses_whitespace_and_drops_scripts(self):
        html = "<p>Exams\n  start</p><script>alert(1)</script><p>Monday</p>"
        self.assertEqual(html_to_text(html), "Exams start Monday")

    def test_preview_truncates_plain_text(self):
        self.assertEqual(preview("<p>" + "a" * 300 + "</p>", 100), "a" * 100)

    def test_normalize_url_keeps_identity_params_in_order(self):
        url = "https://board.test/n?GotoPage=4&no=12&mode=V&search=x#top"
        self.assertEqual(normalize_url(url, ["mode", "no"]), "https://board.test/n?mode=V&no=12")


if __name__ == "__main__":
    unittest.main()
