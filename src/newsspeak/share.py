from __future__ import annotations

import logging
import subprocess
from typing import Callable, List, Optional, Sequence

from .datamodels import Article

logger = logging.getLogger("newsspeak")

SHARED = "shared"
COPIED = "copied"


class Sharer:
    """Hands an article to the system share command, or copies its link.

    `share_command` is an argv list; `{url}` and `{title}` are substituted.
    """

    def __init__(
        self,
        share_command: Optional[Sequence[str]] = None,
        copy: Optional[Callable[[str], None]] = None,
        timeout: float = 10,
    ):
        self.share_command = list(share_command) if share_command else None
        self.copy = copy
        self.timeout = timeout

    def _build_argv(self, article: Article) -> List[str]:
        return [
            part.replace("{url}", article.url).replace("{title}", article.title)
            for part in self.share_command or []
        ]

    def share(self, article: Article) -> str:
        if self.share_command:
            argv = self._build_argv(article)
            try:
                subprocess.run(argv, check=True, timeout=self.timeout, capture_output=True)
                logger.info("Shared %s via %s", article.url, argv[0])
                return SHARED
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning("Share command failed, copying link instead: %s", e)

        if self.copy is None:
            raise RuntimeError("No share command or clipboard available")
        self.copy(article.url)
        logger.info("Copied %s to clipboard", article.url)
        return COPIED
