"""
DOM and script feature extraction for phishing/malware triage.

Each signal group is computed by its own page script. A group that fails
(detached frame, CSP, navigation mid-evaluation) falls back to -1 for its
keys without aborting the other groups, so a partially hostile page still
yields a full feature vector.
"""

from __future__ import annotations

import math
from collections import Counter
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import urljoin, urlparse

from phishscan.utils.logging import get_logger

if TYPE_CHECKING:
    from phishscan.crawler.browser_provider import PageHandle

logger = get_logger(__name__)

FeatureMap = dict[str, int | float | bool]

# Inline/same-origin script bodies above this entropy count as obfuscated
JS_ENTROPY_THRESHOLD = 4.3

SENTINEL = -1


@runtime_checkable
class FeatureExtractor(Protocol):
    """Collaborator that turns a loaded page into a flat feature map."""

    async def extract(self, page: PageHandle, url: str, user_agent: str) -> FeatureMap:
        """Run against a loaded page; return the feature map or raise."""
        ...


# =============================================================================
# Page scripts
# =============================================================================

TAG_COUNTS_JS = """
() => {
    const counts = {};
    const els = document.querySelectorAll('*');
    els.forEach(el => { counts[el.tagName] = (counts[el.tagName] || 0) + 1; });
    return { totalNodes: els.length, uniqueTags: Object.keys(counts).length };
}
"""

INLINE_JS_JS = """
() => {
    let handlers = 0, hrefJS = 0;
    document.querySelectorAll('*').forEach(el => {
        handlers += [...el.attributes].filter(a => a.name.startsWith('on')).length;
        if (typeof el.href === 'string' && el.href.startsWith('javascript:')) hrefJS++;
    });
    return { inlineEventHandlers: handlers, javascriptHref: hrefJS };
}
"""

LOGIN_FORMS_JS = """
() => {
    const suspiciousExtensions = ['.php', '.exe', '.bin', '.dll', '.js'];
    let loginCount = 0, externalBinary = 0, externalNonBinary = 0;
    [...document.forms].forEach(form => {
        const hasPassword = [...form.elements].some(el => el.type === 'password');
        const action = String(form.action || '');
        const isExternal = action && !action.includes(location.hostname);
        const isBinary = suspiciousExtensions.some(ext => action.endsWith(ext));
        if (hasPassword) loginCount++;
        if (hasPassword && isExternal && isBinary) externalBinary++;
        if (hasPassword && isExternal && !isBinary) externalNonBinary++;
    });
    return {
        loginFormCount: loginCount,
        passwordFieldCount: document.querySelectorAll('input[type="password"]').length,
        externalFormActionBinary: externalBinary,
        externalFormActionNonBinary: externalNonBinary
    };
}
"""

SUSPICIOUS_KEYWORDS_JS = """
() => {
    const keywords = ['eval(', 'document.write', 'atob(', 'setTimeout(', 'setInterval(', 'iframe', 'unescape'];
    let suspicious = 0;
    document.querySelectorAll('script').forEach(s => {
        if (keywords.some(k => s.textContent.includes(k))) suspicious++;
    });
    return { suspiciousKeywords: suspicious };
}
"""

HIDDEN_IFRAMES_JS = """
() => {
    let hidden = 0;
    document.querySelectorAll('iframe').forEach(iframe => {
        const style = window.getComputedStyle(iframe);
        if (style.display === 'none' || style.visibility === 'hidden') hidden++;
    });
    return { hiddenIframeCount: hidden };
}
"""

SUSPICIOUS_SCRIPT_SRC_JS = """
() => {
    const words = ['.php', 'eval', 'base64', 'unescape'];
    let suspicious = 0;
    document.querySelectorAll('script').forEach(s => {
        if (words.some(w => (s.src || '').includes(w))) suspicious++;
    });
    return { suspiciousScriptTags: suspicious };
}
"""

PAGE_COUNTS_JS = """
() => {
    const scripts = [...document.querySelectorAll('script')];
    const anchors = [...document.querySelectorAll('a')];
    const externalScripts = scripts.filter(s => s.src).length;
    return {
        metaTagCount: document.querySelectorAll('meta').length,
        externalScriptCount: externalScripts,
        inlineScriptCount: scripts.length - externalScripts,
        externalLinkCount: anchors.filter(a => typeof a.href === 'string' && !a.href.includes(location.hostname)).length,
        embeddedObjectCount: document.querySelectorAll('embed, object').length,
        suspiciousInlineStyleCount: [...document.querySelectorAll('*')].filter(
            el => /display\\s*:\\s*none|visibility\\s*:\\s*hidden/i.test(el.getAttribute('style') || '')
        ).length,
        suspiciousLinkCount: anchors.filter(a => typeof a.href === 'string' && /\\.php|\\.exe|base64/i.test(a.href)).length,
        scriptCount: document.scripts.length,
        linkCount: document.links.length,
        iframeCount: document.querySelectorAll('iframe').length,
        formCount: document.forms.length
    };
}
"""

FRAME_NAVIGATION_JS = """
() => {
    const indicators = ['.php', '.exe', 'base64', 'eval'];
    let navigated = 0, external = 0, suspicious = false;
    for (let i = 0; i < window.frames.length; i++) {
        try {
            const frameUrl = window.frames[i].location.href;
            if (frameUrl && frameUrl !== location.href) navigated++;
            if (frameUrl && !frameUrl.includes(location.hostname)) external++;
            if (frameUrl && indicators.some(ind => frameUrl.includes(ind))) suspicious = true;
        } catch (e) {
            external++;  // cross-origin frames are opaque
        }
    }
    return {
        navigatedFrameCount: navigated,
        externalFrameCount: external,
        hasSuspiciousFrameUrl: suspicious ? 1 : 0
    };
}
"""

SCRIPT_BODIES_JS = """
() => Array.from(document.scripts).map(s => ({ src: s.src, content: s.textContent }))
"""

FETCH_SCRIPT_JS = """
async (src) => {
    try {
        const r = await fetch(src);
        if (!r.ok) return '';
        return await r.text();
    } catch (e) {
        return '';
    }
}
"""

# (script, keys) in output order
SIGNAL_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (TAG_COUNTS_JS, ("totalNodes", "uniqueTags")),
    (INLINE_JS_JS, ("inlineEventHandlers", "javascriptHref")),
    (
        LOGIN_FORMS_JS,
        (
            "loginFormCount",
            "passwordFieldCount",
            "externalFormActionBinary",
            "externalFormActionNonBinary",
        ),
    ),
    (SUSPICIOUS_KEYWORDS_JS, ("suspiciousKeywords",)),
    (HIDDEN_IFRAMES_JS, ("hiddenIframeCount",)),
    (SUSPICIOUS_SCRIPT_SRC_JS, ("suspiciousScriptTags",)),
    (
        PAGE_COUNTS_JS,
        (
            "metaTagCount",
            "externalScriptCount",
            "inlineScriptCount",
            "externalLinkCount",
            "embeddedObjectCount",
            "suspiciousInlineStyleCount",
            "suspiciousLinkCount",
            "scriptCount",
            "linkCount",
            "iframeCount",
            "formCount",
        ),
    ),
    (FRAME_NAVIGATION_JS, ("navigatedFrameCount", "externalFrameCount", "hasSuspiciousFrameUrl")),
)

JS_FEATURE_KEYS = ("js_len", "js_obf_len", "js_external_count")


def shannon_entropy(text: str) -> float:
    """Shannon entropy of a string in bits per character."""
    if not text:
        return 0.0
    length = len(text)
    return -sum(
        (count / length) * math.log2(count / length) for count in Counter(text).values()
    )


def _origin(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    return parsed.scheme, parsed.netloc


class DomFeatureExtractor:
    """Default extractor: DOM structure signals plus script-entropy signals.

    Args:
        entropy_threshold: Entropy above which a script body counts as obfuscated.
        fetch_same_origin_scripts: Fetch same-origin external scripts to measure them.
    """

    def __init__(
        self,
        entropy_threshold: float = JS_ENTROPY_THRESHOLD,
        *,
        fetch_same_origin_scripts: bool = True,
    ) -> None:
        self._entropy_threshold = entropy_threshold
        self._fetch_scripts = fetch_same_origin_scripts

    async def extract(self, page: PageHandle, url: str, user_agent: str) -> FeatureMap:
        features: FeatureMap = {}
        for script, keys in SIGNAL_GROUPS:
            features.update(await self._safe_group(page, script, keys))
        features.update(await self._js_features(page, url))
        return features

    async def _safe_group(
        self,
        page: PageHandle,
        script: str,
        keys: tuple[str, ...],
    ) -> FeatureMap:
        fallback: FeatureMap = {key: SENTINEL for key in keys}
        try:
            result = await page.evaluate(script)
        except Exception as e:
            logger.debug("Signal group failed", keys=keys[0], error=str(e))
            return fallback
        if not isinstance(result, dict):
            return fallback
        return {key: result.get(key, SENTINEL) for key in keys}

    async def _js_features(self, page: PageHandle, url: str) -> FeatureMap:
        """Total script size, high-entropy script size, cross-origin script count."""
        try:
            scripts: Any = await page.evaluate(SCRIPT_BODIES_JS)
            if not isinstance(scripts, list):
                raise TypeError("scripts is not iterable")

            page_origin = _origin(url)
            js_len = 0
            js_obf_len = 0
            js_external_count = 0

            for script in scripts:
                content = script.get("content") or ""
                src = script.get("src") or ""

                if src:
                    script_url = urljoin(url, src)
                    if _origin(script_url) != page_origin:
                        js_external_count += 1
                        continue
                    content = await self._fetch_script(page, script_url)

                if not content:
                    continue

                js_len += len(content)
                if shannon_entropy(content) > self._entropy_threshold:
                    js_obf_len += len(content)

            return {
                "js_len": js_len,
                "js_obf_len": js_obf_len,
                "js_external_count": js_external_count,
            }
        except Exception as e:
            logger.warning("Script feature extraction failed", url=url[:80], error=str(e))
            return {key: SENTINEL for key in JS_FEATURE_KEYS}

    async def _fetch_script(self, page: PageHandle, script_url: str) -> str:
        if not self._fetch_scripts:
            return ""
        try:
            body = await page.evaluate(FETCH_SCRIPT_JS, script_url)
        except Exception as e:
            logger.debug("Script fetch failed", src=script_url[:80], error=str(e))
            return ""
        return body if isinstance(body, str) else ""
