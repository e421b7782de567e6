"""
Quoted-content stripping for Outlook HTML bodies.

Removes reply/forward headers, blockquotes, everything after the first <hr>,
inline cid: images and sign-off blocks so only the newest message remains.
"""

import re

from bs4 import BeautifulSoup

_REPLY_HEADER_SELECTOR = (
    '[id^="divRplyFwdMsg"], [id^="x_divRplyFwdMsg"], '
    '[id*="ms-outlook-mobile-body-separator-line"]'
)
_SIGN_OFF = re.compile(r"^\s*(Με εκτίμηση|best regards|kind regards|regards|thanks|cheers)", re.IGNORECASE)


def _remove_following(tag) -> None:
    for sibling in list(tag.find_next_siblings()):
        sibling.decompose()
    tag.decompose()


def strip_quoted_content(html: str) -> str:
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for img in soup.select('img[src^="cid:"]'):
        img.decompose()
    for node in soup.select(_REPLY_HEADER_SELECTOR):
        node.decompose()
    for quote in soup.find_all("blockquote"):
        quote.decompose()

    first_hr = soup.find("hr")
    if first_hr is not None:
        _remove_following(first_hr)

    for table in soup.select('[class^="MsoNormalTable"]'):
        table.decompose()

    for paragraph in soup.select('[class*="MsoNormal"]'):
        if paragraph.decomposed:
            continue
        if _SIGN_OFF.match(paragraph.get_text().strip()):
            _remove_following(paragraph)

    return str(soup)


def html_to_text(html: str) -> str:
    """Visible text of an HTML body, whitespace collapsed."""
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
