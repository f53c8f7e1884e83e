from datetime import datetime, timezone

from jobboard.markup import esc, format_date, md_to_html


def test_esc_handles_none_and_quotes():
    assert esc(None) == ""
    assert esc('<a href="x">') == "&lt;a href=&quot;x&quot;&gt;"


def test_format_date():
    assert format_date(datetime(2025, 3, 7, tzinfo=timezone.utc)) == "Mar 07, 2025"


def test_raw_html_is_escaped():
    out = md_to_html("<script>alert(1)</script>\n<img src=x onerror=y>")
    assert "<script>" not in out and "<img" not in out
    assert "&lt;script&gt;" in out


def test_inline_markup():
    out = md_to_html("**Bold**, *it*, `code` and ~~old~~")
    assert out == "<p><strong>Bold</strong>, <em>it</em>, <code>code</code> and <del>old</del></p>"


def test_links_only_for_http_schemes():
    assert '<a href="https://example.com">site</a>' in md_to_html("[site](https://example.com)")
    out = md_to_html("[x](javascript:alert(1))")
    assert "<a " not in out


def test_bare_urls_are_linked_once():
    out = md_to_html("apply at https://example.com/jobs today")
    assert out.count("<a ") == 1
    assert '<a href="https://example.com/jobs">https://example.com/jobs</a>' in out


def test_blocks():
    md = "# Title\n\n- one\n- two\n\n1. first\n\n> quoted\n\n---\n\n```py\nx < 1\n```"
    out = md_to_html(md)
    assert "<h1>Title</h1>" in out
    assert "<ul>\n<li>one</li>\n<li>two</li>\n</ul>" in out
    assert "<ol>\n<li>first</li>\n</ol>" in out
    assert "<blockquote>\n<p>quoted</p>\n</blockquote>" in out
    assert "<hr/>" in out
    assert '<pre><code class="language-py">x &lt; 1</code></pre>' in out


def test_paragraph_lines_join_with_breaks():
    assert md_to_html("line one\nline two") == "<p>line one<br/>line two</p>"


def test_empty_input():
    assert md_to_html(None) == ""
    assert md_to_html("") == ""


def test_underscores_in_urls_are_left_alone():
    out = md_to_html("Apply at https://example.com/apply?utm_source=board_list&x=1")
    url = "https://example.com/apply?utm_source=board_list&amp;x=1"
    assert out == f'<p>Apply at <a href="{url}">{url}</a></p>'


def test_emphasis_never_rewrites_links_or_code():
    out = md_to_html("[my *cool* site](https://example.com/a_b_c) and `x_y_z * 2 * 3`")
    assert '<a href="https://example.com/a_b_c">my *cool* site</a>' in out
    assert "<code>x_y_z * 2 * 3</code>" in out
    assert "<em>" not in out


def test_snake_case_words_are_not_italic():
    assert md_to_html("set max_retry_count and _really_ mean it") == (
        "<p>set max_retry_count and <em>really</em> mean it</p>"
    )
