import math
from typing import Dict, List, Optional, Sequence, Tuple

from quizlive.models import GameSession, PlayerAnswer, PlayerSession, Question

# Floor on the time-decay factor for a correct, in-time answer
MIN_CREDIT = 0.5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score(question: Question, selected_index: int, response_time_ms: int, time_limit_ms: int) -> Tuple[bool, int]:
    """Return ``(is_correct, points)`` for one answer.

    Full credit decays linearly toward half credit as the response time
    approaches the limit: ``points * max(0.5, 1 - rt / (2 * limit))``.
    Wrong answers and answers past the limit are worth 0 and never count
    as correct.
    """
    if time_limit_ms <= 0:
        raise ValueError('time_limit_ms must be positive')
    response_time_ms = max(0, response_time_ms)
    if response_time_ms > time_limit_ms:
        return False, 0
    is_correct = selected_index == question.correct_answer
    if not is_correct:
        return False, 0
    factor = max(MIN_CREDIT, 1 - response_time_ms / (2 * time_limit_ms))
    return True, max(0, round_half_up(question.points * factor))


def leaderboard(players: Sequence[PlayerSession]) -> List[Dict]:
    """Players by score (desc), then join order; equal scores share a rank."""
    ordered = sorted(players, key=lambda p: (-(p.score or 0), p.id))
    board = []
    rank = 0
    previous = None
    for position, p in enumerate(ordered, start=1):
        if p.score != previous:
            rank = position
            previous = p.score
        board.append({
            'rank': rank,
            'player_session_id': p.id,
            'player_name': p.player_name,
            'score': p.score,
        })
    return board


def question_stats(question: Question, answers: Sequence[PlayerAnswer]) -> Dict:
    """Per-question aggregate; averages are None when nobody answered."""
    total = len(answers)
    distribution = [0] * len(question.options or [])
    correct = 0
    for a in answers:
        if a.is_correct:
            correct += 1
        if 0 <= a.selected_answer < len(distribution):
            distribution[a.selected_answer] += 1
    average_time: Optional[float] = None
    if total:
        average_time = round(sum(a.response_time for a in answers) / total, 2)
    return {
        'question_id': question.id,
        'question_text': question.question_text,
        'total_responses': total,
        'correct_responses': correct,
        'average_response_time': average_time,
        'answer_distribution': distribution,
    }


def questions_asked(session: GameSession) -> int:
    return max(0, min(session.current_question + 1, session.question_count))


def game_stats(session: GameSession) -> Dict:
    players = list(session.players)
    questions = list(session.quiz.questions)
    answers_by_question: Dict[int, List[PlayerAnswer]] = {q.id: [] for q in questions}
    total_answers = 0
    for p in players:
        for a in p.answers:
            answers_by_question.setdefault(a.question_id, []).append(a)
            total_answers += 1

    slots = len(players) * questions_asked(session)
    average_score = None
    if players:
        average_score = round(sum(p.score for p in players) / len(players), 2)
    return {
        'game_session_id': session.id,
        'total_players': len(players),
        'average_score': average_score,
        'completion_rate': round(total_answers / slots, 4) if slots else None,
        'question_stats': [question_stats(q, answers_by_question.get(q.id, [])) for q in questions],
    }
