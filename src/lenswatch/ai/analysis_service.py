import html
import json
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import UTC, datetime
from typing import Optional, Sequence

from lenswatch.ai.client import AIResult, BaseAIClient
from lenswatch.domain.models import Intervention
from lenswatch.exceptions import AnalysisCancelledError, ValidationError

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """
Analysez les données JSON suivantes qui représentent des interventions de maintenance sur des machines de découpe laser.
Fournissez des informations et des recommandations exploitables. Concentrez-vous sur :
1. Les tendances des interventions (par exemple, des machines spécifiques nécessitant une attention plus fréquente, augmentation des nettoyages ou des remplacements).
2. Les problèmes récurrents potentiels sur certaines machines ou avec certaines lentilles.
3. Des recommandations pour la maintenance préventive basées sur les données.
4. Une analyse de la durée de vie ou de la fréquence de remplacement des différents types de lentilles.

Présentez votre analyse sous forme de points clairs et concis en utilisant le format Markdown.

Voici les données :
""".strip()

_POLL_SECONDS = 0.2


class AnalysisService:
    """
    Sends the whole intervention log to a text-generation client and returns its narrative.
    User-initiated, single attempt, never touches the store.
    """

    def __init__(self, ai_client: BaseAIClient):
        self.ai_client = ai_client

    def analyse(self, records: Sequence[Intervention], cancel: Optional[threading.Event] = None) -> dict:
        """
        Returns {"content", "html", "source", "model", "record_count", "generated_at"}.
        Setting `cancel` while the call is pending abandons it with AnalysisCancelledError.
        """
        if not records:
            raise ValidationError("Il n'y a pas de données à analyser.")

        context = self._build_context(records)
        logger.info(f"Requesting analysis of {len(records)} interventions")
        result = self._call(PROMPT_TEMPLATE, context, cancel)

        return {
            "content": result.content,
            "html": markdown_to_html(result.content),
            "source": result.source,
            "model": result.model,
            "record_count": len(records),
            "generated_at": datetime.now(UTC).isoformat(),
        }

    def _call(self, prompt: str, context: str, cancel: Optional[threading.Event]) -> AIResult:
        if cancel is None:
            return self.ai_client.generate(prompt=prompt, context=context)
        if cancel.is_set():
            raise AnalysisCancelledError("Analysis cancelled before it started")

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analysis")
        try:
            future = pool.submit(self.ai_client.generate, prompt, context)
            while True:
                try:
                    result = future.result(timeout=_POLL_SECONDS)
                except FutureTimeout:
                    if cancel.is_set():
                        future.cancel()
                        logger.info("Analysis cancelled by caller; pending response will be discarded")
                        raise AnalysisCancelledError("Analysis cancelled")
                    continue
                if cancel.is_set():
                    raise AnalysisCancelledError("Analysis cancelled")
                return result
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _build_context(records: Sequence[Intervention]) -> str:
        return json.dumps([r.to_wire() for r in records], ensure_ascii=False, indent=2)


_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(.+?)\*")
_ORDERED = re.compile(r"^\s*\d+\.\s+(.*)$")
_BULLET = re.compile(r"^\s*[-*]\s+(.*)$")


def _inline(text: str) -> str:
    text = html.escape(text, quote=False)
    text = _BOLD.sub(r"<strong>\1</strong>", text)
    return _ITALIC.sub(r"<em>\1</em>", text)


def markdown_to_html(text: str) -> str:
    """
    Limited markdown rendering for the analysis view: bold, italic,
    numbered and bulleted lists, line breaks. Everything else is escaped text.
    """
    out: list[str] = []
    list_tag: Optional[str] = None
    plain: list[str] = []

    def flush_plain():
        if plain:
            out.append("<br />".join(plain))
            plain.clear()

    def close_list():
        nonlocal list_tag
        if list_tag:
            out.append(f"</{list_tag}>")
            list_tag = None

    for line in (text or "").splitlines():
        ordered = _ORDERED.match(line)
        bullet = None if ordered else _BULLET.match(line)
        match = ordered or bullet
        if match:
            tag = "ol" if ordered else "ul"
            flush_plain()
            if list_tag != tag:
                close_list()
                css = "list-decimal" if tag == "ol" else "list-disc"
                out.append(f'<{tag} class="{css} list-inside pl-4">')
                list_tag = tag
            out.append(f"<li>{_inline(match.group(1))}</li>")
        else:
            close_list()
            plain.append(_inline(line))
    close_list()
    flush_plain()
    return "".join(out)
