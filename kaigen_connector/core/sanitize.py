"""Content sanitization for values written by the Kaigen service."""

import html
import re
import unicodedata
from typing import Any

import bleach
from bleach.css_sanitizer import CSSSanitizer


class SanitizationError(Exception):
    """Error during content sanitization."""

    pass


class Sanitizer:
    """Field sanitization utilities.

    Provides secure handling of:
    - Post HTML (allowlist of tags usual in post bodies)
    - Single-line and multi-line plain text
    - Meta keys and nested meta values
    - URLs and slugs
    """

    # Tags allowed in post content
    ALLOWED_TAGS = [
        # Text formatting
        "p",
        "br",
        "strong",
        "b",
        "em",
        "i",
        "u",
        "s",
        "del",
        "ins",
        "a",
        "span",
        "mark",
        "abbr",
        "cite",
        "q",
        "small",
        "sup",
        "sub",
        # Lists
        "ul",
        "ol",
        "li",
        "dl",
        "dt",
        "dd",
        # Headings
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        # Blocks
        "blockquote",
        "code",
        "pre",
        "hr",
        "div",
        "section",
        "details",
        "summary",
        # Images and figures
        "img",
        "figure",
        "figcaption",
        # Tables
        "table",
        "thead",
        "tbody",
        "tfoot",
        "tr",
        "th",
        "td",
        "caption",
        "colgroup",
        "col",
        # Media
        "video",
        "audio",
        "source",
    ]

    # Attributes allowed on every tag (block editor markup relies on class)
    GLOBAL_ATTRIBUTES = ["class", "id", "style", "dir", "lang", "title"]

    ALLOWED_ATTRIBUTES = {
        "a": ["href", "rel", "target", "hreflang"],
        "img": ["src", "alt", "width", "height", "loading", "srcset", "sizes"],
        "th": ["scope", "colspan", "rowspan"],
        "td": ["colspan", "rowspan"],
        "col": ["span", "width"],
        "colgroup": ["span"],
        "ol": ["start", "type", "reversed"],
        "video": ["src", "controls", "width", "height", "poster"],
        "audio": ["src", "controls"],
        "source": ["src", "type"],
        "blockquote": ["cite"],
        "q": ["cite"],
        "details": ["open"],
    }

    ALLOWED_STYLE_PROPERTIES = [
        "color",
        "background-color",
        "font-size",
        "font-weight",
        "font-style",
        "text-align",
        "text-decoration",
        "vertical-align",
        "width",
        "height",
        "max-width",
        "margin",
        "padding",
        "border",
        "border-collapse",
        "direction",
        "float",
        "list-style-type",
    ]

    ALLOWED_PROTOCOLS = ["http", "https", "mailto", "tel"]

    # Remaining dangerous patterns after bleach
    DANGEROUS_PATTERNS = [
        re.compile(r"javascript:", re.IGNORECASE),
        re.compile(r"vbscript:", re.IGNORECASE),
        re.compile(r"on\w+\s*=", re.IGNORECASE),
    ]

    # Tags whose content should be completely removed (not just the tag)
    STRIP_CONTENT_TAGS = re.compile(
        r"<(script|style|noscript|template|iframe|object|svg|math)[^>]*>.*?</\1>",
        re.IGNORECASE | re.DOTALL,
    )
    # Block editor delimiters (<!-- wp:paragraph -->) must survive sanitization
    BLOCK_COMMENT_RE = re.compile(r"<!--\s*(/?wp:[a-z0-9/-]+(?:\s+\{.*?\})?\s*/?)\s*-->", re.DOTALL)
    BLOCK_PLACEHOLDER = "KAIGENBLOCK{}KAIGENBLOCK"
    WHITESPACE_RE = re.compile(r"\s+")
    INLINE_WHITESPACE_RE = re.compile(r"[ \t\f\v]+")
    KEY_RE = re.compile(r"[^a-z0-9_\-]")

    def __init__(self):
        """Initialize sanitizer."""
        self._css_sanitizer = CSSSanitizer(
            allowed_css_properties=self.ALLOWED_STYLE_PROPERTIES
        )

    def _attribute_filter(self, tag: str, name: str, value: str) -> bool:
        """Attribute filter for bleach: global attributes plus per-tag allowlist."""
        if name in self.GLOBAL_ATTRIBUTES:
            return True
        if name.startswith("data-"):
            return True
        return name in self.ALLOWED_ATTRIBUTES.get(tag, [])

    def sanitize_post_html(self, content: str | None) -> str:
        """Sanitize post body HTML with the post allowlist.

        Block editor comment delimiters are preserved; every other comment is
        stripped.

        Args:
            content: HTML content to sanitize.

        Returns:
            Sanitized HTML string.
        """
        if not content:
            return ""

        blocks: list[str] = []

        def _stash(match: re.Match) -> str:
            blocks.append(match.group(0))
            return self.BLOCK_PLACEHOLDER.format(len(blocks) - 1)

        clean = self.BLOCK_COMMENT_RE.sub(_stash, content)
        clean = self.STRIP_CONTENT_TAGS.sub("", clean)

        clean = bleach.clean(
            clean,
            tags=self.ALLOWED_TAGS,
            attributes=self._attribute_filter,
            protocols=self.ALLOWED_PROTOCOLS,
            css_sanitizer=self._css_sanitizer,
            strip=True,
            strip_comments=True,
        )

        for pattern in self.DANGEROUS_PATTERNS:
            clean = pattern.sub("", clean)

        for index, block in enumerate(blocks):
            clean = clean.replace(self.BLOCK_PLACEHOLDER.format(index), block)

        return clean.strip()

    def strip_all_tags(self, value: str | None) -> str:
        """Remove every tag (and script/style bodies) from a string."""
        if not value:
            return ""
        value = self.STRIP_CONTENT_TAGS.sub("", value)
        return html.unescape(bleach.clean(value, tags=[], strip=True, strip_comments=True))

    def sanitize_text_field(self, value: Any) -> str:
        """Sanitize a single-line text value.

        Tags are stripped, line breaks and runs of whitespace collapse to one
        space and the result is trimmed.
        """
        if value is None:
            return ""
        text = self.strip_all_tags(str(value))
        return self.WHITESPACE_RE.sub(" ", text).strip()

    def sanitize_textarea_field(self, value: Any) -> str:
        """Sanitize multi-line text; keeps line breaks."""
        if value is None:
            return ""
        text = self.strip_all_tags(str(value)).replace("\r\n", "\n")
        lines = [self.INLINE_WHITESPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
        return "\n".join(lines).strip()

    def sanitize_key(self, key: Any) -> str:
        """Lowercase a key and drop anything but a-z, 0-9, dash and underscore."""
        return self.KEY_RE.sub("", str(key).lower())

    def sanitize_meta_value(self, value: Any) -> Any:
        """Sanitize a meta value.

        Strings are text-sanitized, lists and dicts are sanitized
        recursively, other scalars pass through.
        """
        if isinstance(value, str):
            return self.sanitize_text_field(value)
        if isinstance(value, list):
            return [self.sanitize_meta_value(item) for item in value]
        if isinstance(value, dict):
            return {
                self.sanitize_text_field(k): self.sanitize_meta_value(v)
                for k, v in value.items()
            }
        if value is None or isinstance(value, (bool, int, float)):
            return value
        raise SanitizationError(f"Unsupported meta value type: {type(value).__name__}")

    def esc_url_raw(self, url: str | None) -> str:
        """Clean a URL for storage.

        Returns an empty string when the URL uses a protocol outside the
        allowlist.
        """
        if not url:
            return ""
        url = url.strip().replace(" ", "%20")
        url = re.sub(r"[^a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=%]", "", url)
        if not url:
            return ""
        if ":" in url.split("/", 1)[0]:
            scheme = url.split(":", 1)[0].lower()
            if scheme not in self.ALLOWED_PROTOCOLS:
                return ""
        elif not url.startswith(("/", "#", "?")):
            url = "http://" + url
        return url

    def slugify(self, text: str) -> str:
        """Convert text to URL-safe slug.

        Unicode letters are kept so non-Latin titles produce readable slugs.

        Args:
            text: Text to convert.

        Returns:
            URL-safe slug, empty when nothing usable remains.
        """
        text = unicodedata.normalize("NFC", self.strip_all_tags(text or ""))
        text = text.lower()
        text = re.sub(r"[\s_.]+", "-", text)
        text = re.sub(r"[^\w-]", "", text).replace("_", "-")
        text = re.sub(r"-+", "-", text)
        return text.strip("-")

    def trim_words(self, text: str, num_words: int = 55, more: str = "...") -> str:
        """Trim plain text to ``num_words`` words, appending ``more`` if cut."""
        words = text.split()
        if len(words) <= num_words:
            return " ".join(words)
        return " ".join(words[:num_words]) + more
