"""Tests for newsletter rendering helpers."""

from app.services.newsletter_templates import (
    TRACKING_PIXEL,
    build_confirm_url,
    build_tracking_url,
    build_unsubscribe_url,
    generate_email_template,
    generate_token,
    generate_unsubscribe_footer,
    inject_tracking_pixel,
    render_confirmation_email,
)


class TestTokens:
    def test_token_is_64_hex_chars(self):
        token = generate_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50


class TestUrls:
    def test_urls_use_base_url(self):
        base = "https://surf.example"
        assert build_confirm_url("abc", base) == "https://surf.example/newsletter/confirm/abc"
        assert build_unsubscribe_url("def", base) == "https://surf.example/newsletter/unsubscribe/def"
        assert build_tracking_url("c1", "k2", base) == "https://surf.example/track/open/c1/k2"

    def test_default_base_url_is_localhost(self):
        assert build_confirm_url("abc").startswith("http://localhost:5000/")


class TestTrackingPixel:
    def test_pixel_injected_before_body_close(self):
        html = "<html><body><p>Hi</p></body></html>"
        result = inject_tracking_pixel(html, "https://t/1")
        assert result == '<html><body><p>Hi</p><img src="https://t/1" width="1" height="1" alt="" /></body></html>'

    def test_pixel_appended_without_body(self):
        result = inject_tracking_pixel("<p>Hi</p>", "https://t/1")
        assert result.endswith('<img src="https://t/1" width="1" height="1" alt="" />')

    def test_pixel_bytes_are_a_gif(self):
        assert TRACKING_PIXEL.startswith(b"GIF89a")


class TestEmailTemplate:
    def test_template_contains_content_pixel_and_footer(self):
        html = generate_email_template(
            "<h1>Onde</h1>",
            unsubscribe_url="https://s/newsletter/unsubscribe/tok",
            tracking_url="https://s/track/open/c/k",
            postal_address="Via del Mare 1",
        )
        assert "<h1>Onde</h1>" in html
        assert 'src="https://s/track/open/c/k"' in html
        assert 'href="https://s/newsletter/unsubscribe/tok"' in html
        assert "Via del Mare 1" in html
        assert html.index("<h1>Onde</h1>") < html.index("Annulla l'iscrizione")

    def test_preheader_is_hidden(self):
        html = generate_email_template("<p>x</p>", "u", "t", preheader="Le onde di questa settimana")
        assert "display: none" in html
        assert "Le onde di questa settimana" in html

    def test_footer_defaults_to_school_address(self):
        assert "La Spezia" in generate_unsubscribe_footer("https://u")

    def test_confirmation_email_links_confirm_url(self):
        html = render_confirmation_email("https://s/newsletter/confirm/abc", "Giulia")
        assert 'href="https://s/newsletter/confirm/abc"' in html
        assert "Ciao Giulia" in html

    def test_confirmation_email_escapes_name(self):
        html = render_confirmation_email("https://s/c", "<script>")
        assert "<script>" not in html
