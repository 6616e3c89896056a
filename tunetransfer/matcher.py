"""Cross-catalog matching of library items against search candidates."""

import re
import unicodedata
from typing import Dict, List, Optional

from rapidfuzz import fuzz

from tunetransfer.models import ItemType, LibraryItem, MatchCandidate
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.matcher")


class MatchResult:
    """Result of a matching operation."""

    def __init__(self, candidate: MatchCandidate, score: int):
        """
        Initialize match result.

        Args:
            candidate: The accepted target-catalog candidate
            score: Match confidence score (0-100)
        """
        self.candidate = candidate
        self.score = score

    def __repr__(self) -> str:
        return f"MatchResult(id={self.candidate.id}, score={self.score})"


class Matcher:
    """
    Deterministic scorer picking the best search candidate for a library item.

    Scoring table (all strings normalized first):

    - name: exact +50, else containment either way +30,
      else 20 x share of source tokens found in the candidate name
    - artists (tracks, albums, artists): any source artist equal to,
      containing or contained in any candidate artist +30
    - album (tracks only): exact +20, else containment either way +10

    The best candidate is accepted when its score reaches ACCEPT_THRESHOLD.
    """

    NAME_EXACT = 50
    NAME_CONTAINS = 30
    NAME_TOKEN_OVERLAP = 20
    ARTIST_OVERLAP = 30
    ALBUM_EXACT = 20
    ALBUM_CONTAINS = 10
    ACCEPT_THRESHOLD = 40

    ARTIST_WEIGHTED_TYPES = (ItemType.TRACKS, ItemType.ALBUMS, ItemType.ARTISTS)

    PUNCTUATION = re.compile(r'[^\w\s]|_')

    @staticmethod
    def normalize(s: Optional[str]) -> str:
        """
        Normalize a name for comparison.

        Lowercases, folds accents, drops punctuation and symbols (letters and
        digits of every script are kept) and collapses whitespace.
        """
        if not s:
            return ""

        result = unicodedata.normalize('NFD', s.lower())
        result = ''.join(c for c in result if unicodedata.category(c) != 'Mn')
        result = unicodedata.normalize('NFC', result)
        result = Matcher.PUNCTUATION.sub('', result)
        return ' '.join(result.split())

    def score(self, item: LibraryItem, candidate: MatchCandidate, item_type: ItemType) -> int:
        """Score one candidate against a library item (0-100)."""
        total = 0.0

        source_name = self.normalize(item.display_name)
        candidate_name = self.normalize(candidate.display_name)
        if source_name and candidate_name:
            if source_name == candidate_name:
                total += self.NAME_EXACT
            elif source_name in candidate_name or candidate_name in source_name:
                total += self.NAME_CONTAINS
            else:
                source_tokens = source_name.split()
                candidate_tokens = set(candidate_name.split())
                shared = sum(1 for token in source_tokens if token in candidate_tokens)
                total += self.NAME_TOKEN_OVERLAP * shared / len(source_tokens)

        if item_type in self.ARTIST_WEIGHTED_TYPES and self._artists_overlap(item.artists, candidate.artists):
            total += self.ARTIST_OVERLAP

        if item_type == ItemType.TRACKS:
            source_album = self.normalize(item.album_name)
            candidate_album = self.normalize(candidate.album_name)
            if source_album and candidate_album:
                if source_album == candidate_album:
                    total += self.ALBUM_EXACT
                elif source_album in candidate_album or candidate_album in source_album:
                    total += self.ALBUM_CONTAINS

        return int(total)

    def best_match(
        self,
        item: LibraryItem,
        candidates: List[MatchCandidate],
        item_type: ItemType
    ) -> Optional[MatchResult]:
        """
        Pick the highest scoring candidate, first seen winning ties.

        Returns:
            MatchResult when the best score reaches the threshold, None otherwise
        """
        best = None
        best_score = 0

        for candidate in candidates:
            candidate_score = self.score(item, candidate, item_type)
            if candidate_score > best_score:
                best = candidate
                best_score = candidate_score

        if best is not None and best_score >= self.ACCEPT_THRESHOLD:
            logger.debug(
                f"Matched (score={best_score}): {item.display_name} -> {best.display_name} [{best.id}]"
            )
            return MatchResult(best, best_score)

        logger.debug(
            f"No match (best score={best_score}) for {item.display_name} "
            f"among {len(candidates)} candidates"
        )
        return None

    def suggest(self, item: LibraryItem, candidates: List[MatchCandidate], limit: int = 3) -> List[Dict]:
        """
        Rank rejected candidates by fuzzy similarity for the failure report.

        Informational only: acceptance is decided by best_match().
        """
        source = self.normalize(' '.join([item.display_name] + list(item.artists)))
        if not source:
            return []

        suggestions = []
        for candidate in candidates:
            target = self.normalize(' '.join([candidate.display_name] + list(candidate.artists)))
            if not target:
                continue
            suggestions.append({
                'id': candidate.id,
                'name': candidate.display_name,
                'artists': list(candidate.artists),
                'similarity': round(fuzz.token_set_ratio(source, target), 1),
            })

        suggestions.sort(key=lambda s: s['similarity'], reverse=True)
        return suggestions[:limit]

    def _artists_overlap(self, source_artists: List[str], candidate_artists: List[str]) -> bool:
        sources = [a for a in (self.normalize(s) for s in source_artists) if a]
        targets = [a for a in (self.normalize(c) for c in candidate_artists) if a]

        for source in sources:
            for target in targets:
                if source == target or source in target or target in source:
                    return True
        return False
