"""
Newsletter rendering helpers.

Builds the public links embedded in emails, wraps campaign content in the
branded layout, and renders the small HTML pages served by the public
confirm/unsubscribe endpoints.
"""

import base64
import secrets
from html import escape
from typing import Optional

from app.config import settings

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

TRACKING_PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CONFIRMATION_SUBJECT = "Conferma la tua iscrizione alla Newsletter"
TEST_SUBJECT_PREFIX = "[TEST] "


def generate_token() -> str:
    """64 hex chars from 32 random bytes."""
    return secrets.token_hex(32)


def build_confirm_url(token: str, base_url: Optional[str] = None) -> str:
    return f"{base_url or settings.public_base_url}/newsletter/confirm/{token}"


def build_unsubscribe_url(token: str, base_url: Optional[str] = None) -> str:
    return f"{base_url or settings.public_base_url}/newsletter/unsubscribe/{token}"


def build_tracking_url(campaign_id, contact_id, base_url: Optional[str] = None) -> str:
    return f"{base_url or settings.public_base_url}/track/open/{campaign_id}/{contact_id}"


def generate_unsubscribe_footer(unsubscribe_url: str, postal_address: Optional[str] = None) -> str:
    address = postal_address or settings.NEWSLETTER_POSTAL_ADDRESS
    return f"""
    <div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #e0e0e0; font-size: 12px; color: #666; text-align: center;">
      <p>Hai ricevuto questa email perché sei iscritto alla nostra newsletter.</p>
      <p><a href="{unsubscribe_url}" style="color: #0066cc; text-decoration: underline;">Annulla l'iscrizione</a></p>
      <p style="margin-top: 10px;">{escape(address)}</p>
    </div>
    """


def inject_tracking_pixel(html: str, tracking_url: str) -> str:
    """Put the pixel right before the first </body>, or append it when there is none."""
    pixel = f'<img src="{tracking_url}" width="1" height="1" alt="" />'
    if "</body>" in html:
        return html.replace("</body>", f"{pixel}</body>", 1)
    return html + pixel


def _preheader_block(preheader: Optional[str]) -> str:
    if not preheader:
        return ""
    return (
        '<div style="display: none; max-height: 0; overflow: hidden; mso-hide: all;">'
        f"{escape(preheader)}</div>"
    )


def generate_email_template(
    content: str,
    unsubscribe_url: str,
    tracking_url: str,
    preheader: Optional[str] = None,
    postal_address: Optional[str] = None,
) -> str:
    """
    Render the final email for one recipient.

    The campaign content goes inside a 600px table layout, the tracking
    pixel is injected into the content and the unsubscribe footer (with the
    postal address) closes the message.
    """
    content_with_pixel = inject_tracking_pixel(content, tracking_url)
    footer = generate_unsubscribe_footer(unsubscribe_url, postal_address)

    return f"""<!DOCTYPE html>
<html lang="it">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Newsletter</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
  {_preheader_block(preheader)}
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f4f4f4;">
    <tr>
      <td align="center" style="padding: 20px 0;">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px; overflow: hidden;">
          <tr>
            <td style="padding: 40px 30px;">
              {content_with_pixel}
            </td>
          </tr>
          <tr>
            <td style="padding: 20px 30px 40px;">
              {footer}
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def render_confirmation_email(confirm_url: str, first_name: Optional[str] = None) -> str:
    name = escape(first_name) if first_name else "surfista"
    return f"""
    <h1>Benvenuto nella Newsletter della Scuola di Longboard!</h1>
    <p>Ciao {name},</p>
    <p>Clicca sul link qui sotto per confermare la tua iscrizione:</p>
    <p><a href="{confirm_url}" style="display: inline-block; padding: 12px 24px; background-color: #0066cc; color: white; text-decoration: none; border-radius: 4px;">Conferma Iscrizione</a></p>
    <p>Se non hai richiesto questa iscrizione, puoi ignorare questa email.</p>
    """


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="it">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
  {body}
  <p><a href="/">Torna alla home</a></p>
</body>
</html>
"""


def render_confirmed_page(first_name: Optional[str] = None) -> str:
    name = escape(first_name) if first_name else ""
    return _page(
        "Iscrizione Confermata",
        f"""<h1>✓ Iscrizione Confermata!</h1>
  <p>Grazie {name} per esserti iscritto/a alla nostra newsletter.</p>
  <p>Riceverai aggiornamenti sulle ultime novità, corsi e contenuti esclusivi sul surf.</p>""",
    )


def render_invalid_confirm_page() -> str:
    return _page(
        "Token non valido",
        """<h1>Token non valido o scaduto</h1>
  <p>Il link di conferma non è valido o è già stato utilizzato.</p>""",
    )


def render_unsubscribed_page(first_name: Optional[str] = None) -> str:
    name = escape(first_name) if first_name else "surfista"
    return _page(
        "Disiscrizione Completata",
        f"""<h1>Disiscrizione Completata</h1>
  <p>Ci dispiace vederti andare, {name}.</p>
  <p>Non riceverai più email dalla nostra newsletter.</p>
  <p>Se cambi idea, puoi sempre iscriverti nuovamente dal nostro sito.</p>""",
    )


def render_invalid_unsubscribe_page() -> str:
    return _page(
        "Token non valido",
        """<h1>Token non valido</h1>
  <p>Il link di disiscrizione non è valido.</p>""",
    )
