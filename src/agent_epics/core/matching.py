"""Agent-to-task matching by loose skill overlap.

A skill matches when either string contains the other (case-insensitive), so
"test" matches "testing" and vice versa. Every agent gets a flat availability
floor of 40; full skill coverage reaches 100.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .task import AgentAssignment, AgentProfile

AVAILABILITY_FLOOR = 40.0
SKILL_WEIGHT = 60.0
MAX_SCORE = 100.0


@dataclass(frozen=True)
class AgentMatch:
    agent: AgentProfile
    score: float


def _skill_matches(agent_skill: str, required_skills: Sequence[str]) -> bool:
    for required in required_skills:
        if agent_skill in required or required in agent_skill:
            return True
    return False


def score_agent(agent_skills: Sequence[str], required_skills: Sequence[str]) -> float:
    """Score an agent's skills against a task's required skills, in [40, 100].

    Counts the agent skills that match some required skill, so an agent with
    several overlapping skills can exceed full coverage before the cap.
    """
    agent = [s.lower() for s in agent_skills]
    required = [r.lower() for r in required_skills]
    matches = sum(1 for skill in agent if _skill_matches(skill, required))
    match_fraction = matches / max(len(required), 1)
    return min(MAX_SCORE, match_fraction * SKILL_WEIGHT + AVAILABILITY_FLOOR)


def rank_agents(agents: Sequence[AgentProfile], required_skills: Sequence[str]) -> List[AgentMatch]:
    """Rank agents by score, highest first. Ties keep catalog order."""
    matches = [AgentMatch(agent, score_agent(agent.skills, required_skills)) for agent in agents]
    # sorted() is stable
    return sorted(matches, key=lambda m: m.score, reverse=True)


def best_agent(agents: Sequence[AgentProfile], required_skills: Sequence[str]) -> Optional[AgentMatch]:
    ranked = rank_agents(agents, required_skills)
    return ranked[0] if ranked else None


def best_assignment(agents: Sequence[AgentProfile], required_skills: Sequence[str]) -> Optional[AgentAssignment]:
    """Assignment to cache on a task for the best agent. None without required skills."""
    if not required_skills:
        return None
    match = best_agent(agents, required_skills)
    if match is None:
        return None
    return AgentAssignment(
        agent_id=match.agent.id,
        agent_name=match.agent.name,
        agent_type=match.agent.type,
        score=match.score,
    )
