"""セッション単位で対話状態の連鎖を保持するユースケース。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import uuid4

from dsm.application.use_cases.dialogue_turn_loop import DialogueTurnLoop
from dsm.application.use_cases.training_data import DialogueTurnRecord
from dsm.domain.value_objects.dialogue_state import DialogueState, Role
from dsm.domain.value_objects.prediction import Prediction

_LOG = logging.getLogger(__name__)


class DialogueSessionNotFoundError(KeyError):
    """指定セッションが存在しない場合の例外。"""


@dataclass(frozen=True, slots=True)
class DialogueReply:
    """1ターン処理の返却値。"""

    session_id: str
    turn_id: int
    reply: str | None
    state: DialogueState
    user_prediction: Prediction
    agent_prediction: Prediction


@dataclass(slots=True)
class _SessionContext:
    """内部セッション状態。"""

    state: DialogueState
    turn_id: int
    turns: list[DialogueTurnRecord]


class DialogueSessionUseCase:
    """セッションごとに独立した状態連鎖でターンを実行する。"""

    def __init__(self, *, loop: DialogueTurnLoop, max_sessions: int = 200) -> None:
        """ターンループとセッション上限を受け取る。"""
        if max_sessions < 1:
            raise ValueError("max_sessions は 1 以上である必要があります。")
        self._loop = loop
        self._max_sessions = max_sessions
        self._sessions: dict[str, _SessionContext] = {}

    def create_session(self) -> str:
        """新しいセッションを作成して session_id を返す。"""
        if len(self._sessions) >= self._max_sessions:
            self._evict_oldest_session()

        session_id = str(uuid4())
        self._sessions[session_id] = _SessionContext(
            state=DialogueState.empty(),
            turn_id=0,
            turns=[],
        )
        return session_id

    def send_utterance(self, *, session_id: str, utterance: str) -> DialogueReply:
        """指定セッションでユーザー発話 1 件分のターンを処理する。"""
        normalized = utterance.strip()
        if not normalized:
            raise ValueError("utterance は空にできません。")

        session = self._get_session(session_id)
        result = self._loop.run_full_turn(session.state, normalized)

        # 失敗したターンは状態連鎖に残さない。
        session.turns.append(DialogueTurnRecord(role=Role.USER, state=result.user_turn.state))
        session.turns.append(
            DialogueTurnRecord(
                role=Role.AGENT,
                state=result.final_state,
                base_state=result.executed_state,
            )
        )
        session.state = result.final_state
        session.turn_id += 1

        return DialogueReply(
            session_id=session_id,
            turn_id=session.turn_id,
            reply=result.agent_turn.utterance,
            state=result.final_state,
            user_prediction=result.user_turn.prediction,
            agent_prediction=result.agent_turn.prediction,
        )

    def current_state(self, session_id: str) -> DialogueState:
        """セッションの最新状態を返す。"""
        return self._get_session(session_id).state

    def export_turns(self, session_id: str) -> tuple[DialogueTurnRecord, ...]:
        """学習データ構築用に記録済みターンを返す。"""
        return tuple(self._get_session(session_id).turns)

    def _get_session(self, session_id: str) -> _SessionContext:
        session = self._sessions.get(session_id)
        if session is None:
            raise DialogueSessionNotFoundError(f"session_id が存在しません: {session_id}")
        return session

    def _evict_oldest_session(self) -> None:
        """最大セッション数超過時に最古セッションを削除する。"""
        oldest_session_id = next(iter(self._sessions))
        del self._sessions[oldest_session_id]
        _LOG.info("Evicted dialogue session: session_id=%s", oldest_session_id)
