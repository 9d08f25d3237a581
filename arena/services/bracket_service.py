import logging
import math
import random
from typing import List, Optional, Dict, Tuple, Union

from arena.core.config import Settings, settings as default_settings
from arena.core.exceptions import BracketIntegrityError, InsufficientParticipantsError, InvalidFormatError
from arena.models.bracket_model import BracketModel, BracketNode, BracketSide, MatchModel, MatchStatus
from arena.models.tournament_model import ParticipantModel, TournamentConfig, TournamentFormat
from arena.services.scheduling import assign_match_times, build_schedule
from arena.services.seeding_service import seed_participants
from arena.services.swiss_service import SwissService

logger = logging.getLogger(__name__)

# An elimination "entry" is what occupies one slot of a round before pairing:
# a match (its winner will appear), a participant carried through a bye, or nothing.
Entry = Union[MatchModel, str, None]
# A losers bracket source: ("winner" | "loser", match) or None when no one can arrive.
Source = Optional[Tuple[str, MatchModel]]

GRAND_FINALS_ID = "grand_finals"


class BracketService:
    def __init__(self,
                 config: Settings = default_settings,
                 rng: Optional[random.Random] = None,
                 swiss_service: Optional[SwissService] = None):
        self.config = config
        self.rng = rng
        self.swiss_service = swiss_service or SwissService()

    def generate(self, tournament: TournamentConfig) -> BracketModel:
        """
        Builds the full match graph, tree and schedule for the tournament's format.
        Raises InvalidFormatError, InsufficientParticipantsError or BracketIntegrityError.
        """
        try:
            tournament_format = TournamentFormat(tournament.format)
        except ValueError:
            raise InvalidFormatError(tournament.format)

        participants = [p for p in tournament.participants if p.is_active]
        if len(participants) < 2:
            raise InsufficientParticipantsError(len(participants))

        seeded = seed_participants(participants, tournament.bracket_settings.seeding_method, self.rng)

        generators = {
            TournamentFormat.SINGLE_ELIMINATION: self._generate_single_elimination,
            TournamentFormat.DOUBLE_ELIMINATION: self._generate_double_elimination,
            TournamentFormat.ROUND_ROBIN: self._generate_round_robin,
            TournamentFormat.SWISS: self._generate_swiss,
        }
        bracket = generators[tournament_format](tournament, seeded)
        bracket.seeding = [p.user_id for p in seeded]

        assign_match_times(self.config, tournament.tournament_start, bracket.matches)
        bracket.schedule = build_schedule(self.config, tournament.tournament_start, bracket.matches)
        self.ensure_valid(bracket)

        logger.info(
            "Generated %s bracket for tournament %s: %d participants, %d rounds, %d matches",
            tournament_format.value, tournament.id, len(seeded), bracket.total_rounds, len(bracket.matches),
        )
        return bracket

    # --- Single elimination -------------------------------------------------

    def _generate_single_elimination(self, tournament: TournamentConfig, seeded: List[ParticipantModel]) -> BracketModel:
        rounds = self._build_elimination_rounds(
            tournament, [p.user_id for p in seeded], id_prefix="match_", side=None
        )
        matches = [m for round_matches in rounds for m in round_matches]
        return BracketModel(
            tournament_id=tournament.id,
            format=TournamentFormat.SINGLE_ELIMINATION,
            total_rounds=len(rounds),
            matches=matches,
            tree=self._build_tree(matches),
        )

    def _build_elimination_rounds(self,
                                  tournament: TournamentConfig,
                                  player_ids: List[str],
                                  id_prefix: str,
                                  side: Optional[BracketSide]) -> List[List[MatchModel]]:
        """
        Pads the seeded ids with byes up to the next power of two and pairs
        consecutive entries. Round 1 only gets a match where both entries are
        real; a lone participant is carried to the slot its pairing maps to.
        Round r+1 holds ceil(len(round r) / 2) matches and match (r, p) feeds
        (r+1, ceil(p/2)), slot 1 for odd p, slot 2 for even p.
        """
        total_rounds = math.ceil(math.log2(len(player_ids)))
        bracket_size = 2 ** total_rounds
        padded: List[Optional[str]] = list(player_ids) + [None] * (bracket_size - len(player_ids))
        best_of = tournament.bracket_settings.best_of
        counter = 0

        def new_match(round_number: int, position: int, **kwargs) -> MatchModel:
            nonlocal counter
            counter += 1
            return MatchModel(
                id=f"{id_prefix}{counter}",
                tournament_id=tournament.id,
                round_number=round_number,
                match_in_round=position,
                bracket=side,
                best_of=best_of,
                **kwargs,
            )

        rounds: List[List[MatchModel]] = []
        entries: List[Entry] = []
        first_round: List[MatchModel] = []
        for k in range(bracket_size // 2):
            player1, player2 = padded[2 * k], padded[2 * k + 1]
            if player1 and player2:
                match = new_match(1, k + 1, player1_id=player1, player2_id=player2, status=MatchStatus.PENDING)
                first_round.append(match)
                entries.append(match)
            else:
                entries.append(player1 or player2)
        rounds.append(first_round)

        for round_number in range(2, total_rounds + 1):
            match_count = math.ceil(len(rounds[-1]) / 2)
            round_matches: List[MatchModel] = []
            next_entries: List[Entry] = []
            for q in range(len(entries) // 2):
                pair = (entries[2 * q], entries[2 * q + 1])
                if q >= match_count:
                    # Only a carried participant can sit past the last match of a round.
                    next_entries.append(pair[0] if pair[0] is not None else pair[1])
                    continue

                match = new_match(round_number, q + 1, status=MatchStatus.WAITING)
                feeders = 0
                for slot, entry in enumerate(pair, start=1):
                    if isinstance(entry, MatchModel):
                        entry.next_match_id = match.id
                        entry.winner_to_player_slot = slot
                        feeders += 1
                    elif entry is not None:
                        match.set_slot(slot, entry)
                        feeders += 1
                match.is_bye = feeders == 1
                round_matches.append(match)
                next_entries.append(match)
            rounds.append(round_matches)
            entries = next_entries

        return rounds

    # --- Double elimination -------------------------------------------------

    def _generate_double_elimination(self, tournament: TournamentConfig, seeded: List[ParticipantModel]) -> BracketModel:
        winners_rounds = self._build_elimination_rounds(
            tournament, [p.user_id for p in seeded], id_prefix="w_match_", side=BracketSide.WINNERS
        )
        winners_matches = [m for round_matches in winners_rounds for m in round_matches]
        losers_matches, losers_champion = self._build_losers_bracket(tournament, winners_rounds)

        losers_round_count = max((m.round_number for m in losers_matches), default=0)
        grand_finals = MatchModel(
            id=GRAND_FINALS_ID,
            tournament_id=tournament.id,
            round_number=max(len(winners_rounds), losers_round_count) + 1,
            match_in_round=1,
            bracket=BracketSide.GRAND_FINALS,
            best_of=tournament.bracket_settings.best_of,
            status=MatchStatus.WAITING,
        )
        winners_final = winners_rounds[-1][0]
        winners_final.next_match_id = grand_finals.id
        winners_final.winner_to_player_slot = 1
        self._route(losers_champion, grand_finals, 2)

        matches = winners_matches + losers_matches + [grand_finals]
        return BracketModel(
            tournament_id=tournament.id,
            format=TournamentFormat.DOUBLE_ELIMINATION,
            total_rounds=len(winners_rounds) + losers_round_count + 1,
            matches=matches,
            tree=self._build_tree(matches),
        )

    def _build_losers_bracket(self,
                              tournament: TournamentConfig,
                              winners_rounds: List[List[MatchModel]]) -> Tuple[List[MatchModel], Source]:
        """
        Standard losers bracket over a 2^W winners bracket:
          LB 1      losers of WB round 1, matches 2j-1 vs 2j
          LB 2k     LB 2k-1 winners vs losers of WB round k+1 (reversed order)
          LB 2k+1   LB 2k winners paired off
        A slot nobody can reach (byes in the winners bracket) collapses: its lone
        source is routed straight to the next real match. Empty rounds disappear
        and the remaining rounds and positions are renumbered contiguously.
        """
        total_winners_rounds = len(winners_rounds)
        bracket_size = 2 ** total_winners_rounds

        def loser_of(wb_round: int, index: int) -> Source:
            round_matches = winners_rounds[wb_round - 1]
            if index >= len(round_matches) or round_matches[index].is_bye:
                return None
            return ("loser", round_matches[index])

        if total_winners_rounds == 1:
            return [], loser_of(1, 0)

        created: Dict[int, List[MatchModel]] = {}
        counter = 0

        def resolve(lb_round: int, first: Source, second: Source) -> Source:
            nonlocal counter
            if first is None or second is None:
                return first if first is not None else second
            counter += 1
            match = MatchModel(
                id=f"l_match_{counter}",
                tournament_id=tournament.id,
                round_number=lb_round,
                match_in_round=len(created.get(lb_round, [])) + 1,
                bracket=BracketSide.LOSERS,
                best_of=tournament.bracket_settings.best_of,
                status=MatchStatus.WAITING,
            )
            self._route(first, match, 1)
            self._route(second, match, 2)
            created.setdefault(lb_round, []).append(match)
            return ("winner", match)

        lb_round = 1
        outputs = [resolve(lb_round, loser_of(1, 2 * j), loser_of(1, 2 * j + 1)) for j in range(bracket_size // 4)]
        for wb_round in range(2, total_winners_rounds + 1):
            lb_round += 1
            node_count = bracket_size // 2 ** wb_round
            outputs = [
                resolve(lb_round, outputs[j], loser_of(wb_round, node_count - 1 - j))
                for j in range(node_count)
            ]
            if wb_round < total_winners_rounds:
                lb_round += 1
                outputs = [resolve(lb_round, outputs[2 * j], outputs[2 * j + 1]) for j in range(len(outputs) // 2)]

        losers_matches: List[MatchModel] = []
        for new_round, raw_round in enumerate(sorted(created), start=1):
            for match in created[raw_round]:
                match.round_number = new_round
                losers_matches.append(match)
        return losers_matches, outputs[0]

    @staticmethod
    def _route(source: Source, target: MatchModel, slot: int) -> None:
        if source is None:
            return
        kind, match = source
        if kind == "loser":
            match.loser_next_match_id = target.id
            match.loser_to_player_slot = slot
        else:
            match.next_match_id = target.id
            match.winner_to_player_slot = slot

    # --- Round robin --------------------------------------------------------

    def _generate_round_robin(self, tournament: TournamentConfig, seeded: List[ParticipantModel]) -> BracketModel:
        """
        Circle method: the first seed stays put while everyone else rotates one
        place per round; position i meets position n-1-i. An odd field gets a
        phantom slot whose pairing is skipped, so each participant sits out once.
        """
        ring: List[Optional[str]] = [p.user_id for p in seeded]
        if len(ring) % 2 == 1:
            ring.append(None)
        size = len(ring)
        total_rounds = size - 1

        matches: List[MatchModel] = []
        counter = 0
        for round_index in range(total_rounds):
            position = 0
            for i in range(size // 2):
                player1, player2 = ring[i], ring[size - 1 - i]
                if player1 is None or player2 is None:
                    continue
                position += 1
                counter += 1
                matches.append(MatchModel(
                    id=f"rr_match_{counter}",
                    tournament_id=tournament.id,
                    round_number=round_index + 1,
                    match_in_round=position,
                    player1_id=player1,
                    player2_id=player2,
                    best_of=tournament.bracket_settings.best_of,
                    status=MatchStatus.PENDING,
                ))
            ring = [ring[0], ring[-1]] + ring[1:-1]

        return BracketModel(
            tournament_id=tournament.id,
            format=TournamentFormat.ROUND_ROBIN,
            total_rounds=total_rounds,
            matches=matches,
        )

    # --- Swiss --------------------------------------------------------------

    def _generate_swiss(self, tournament: TournamentConfig, seeded: List[ParticipantModel]) -> BracketModel:
        # Later rounds are paired lazily from results, see SwissService.next_round
        first_round = self.swiss_service.pair_round(
            tournament.id, seeded, 1, [], best_of=tournament.bracket_settings.best_of
        )
        return BracketModel(
            tournament_id=tournament.id,
            format=TournamentFormat.SWISS,
            total_rounds=math.ceil(math.log2(len(seeded))),
            matches=first_round,
        )

    # --- Tree & validation --------------------------------------------------

    @staticmethod
    def _build_tree(matches: List[MatchModel]) -> List[BracketNode]:
        nodes: Dict[str, BracketNode] = {
            m.id: BracketNode(
                id=f"node_{m.id}",
                match_id=m.id,
                round_number=m.round_number,
                match_in_round=m.match_in_round,
                bracket=m.bracket,
            )
            for m in matches
        }
        for m in matches:
            if m.next_match_id and m.next_match_id in nodes:
                parent = nodes[m.next_match_id]
                nodes[m.id].parent_id = parent.id
                parent.child_ids.append(nodes[m.id].id)
        return list(nodes.values())

    @staticmethod
    def validate_bracket(bracket: BracketModel) -> List[str]:
        """Returns a list of integrity problems; empty when the bracket is consistent."""
        errors: List[str] = []

        ids = [m.id for m in bracket.matches]
        if len(ids) != len(set(ids)):
            errors.append("Duplicate match IDs found")
        known = set(ids)

        def check_contiguous(label: str, numbers: List[int]) -> None:
            present = sorted(set(numbers))
            if present and present != list(range(1, present[-1] + 1)):
                errors.append(f"Non-contiguous {label}: {present}")

        check_contiguous("rounds", [m.round_number for m in bracket.matches])

        sides: Dict[Optional[BracketSide], Dict[int, List[int]]] = {}
        for m in bracket.matches:
            sides.setdefault(m.bracket, {}).setdefault(m.round_number, []).append(m.match_in_round)
        for side, rounds in sides.items():
            label = side.value if side else "bracket"
            if side != BracketSide.GRAND_FINALS:
                check_contiguous(f"{label} rounds", list(rounds))
            for round_number, positions in rounds.items():
                if len(positions) != len(set(positions)):
                    errors.append(f"Duplicate positions in {label} round {round_number}")
                check_contiguous(f"{label} round {round_number} positions", positions)

        if bracket.format == TournamentFormat.SINGLE_ELIMINATION:
            counts = {r: len(p) for r, p in sides.get(None, {}).items()}
            for round_number in range(2, max(counts, default=1) + 1):
                expected = math.ceil(counts.get(round_number - 1, 0) / 2)
                actual = counts.get(round_number, 0)
                if actual != expected:
                    errors.append(f"Round {round_number} has {actual} matches, expected {expected}")

        for m in bracket.matches:
            for target in (m.next_match_id, m.loser_next_match_id):
                if target and target not in known:
                    errors.append(f"Match {m.id} routes to unknown match {target}")
            if m.is_finished and not m.is_draw and not (m.winner_id and m.involves(m.winner_id)):
                errors.append(f"Finished match {m.id} has no winner from its slots")

        return errors

    def ensure_valid(self, bracket: BracketModel) -> None:
        errors = self.validate_bracket(bracket)
        if errors:
            logger.error("Bracket %s failed validation: %s", bracket.id, errors)
            raise BracketIntegrityError(errors)
