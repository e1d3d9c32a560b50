"""Static routing of proposal categories to governance domains.

Every category resolves to one of five DAO domains and a priority; the
priority picks the voting threshold. Untrusted category strings that do not
match a known category fail closed to the Core Platform route.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from loyalvest_api.models.governance import VotingType


class GovernanceDomain(str, Enum):
    PLATFORM_GOVERNANCE = "Platform Governance DAO"
    FINANCIAL_TREASURY = "Financial & Treasury DAO"
    COMMUNITY_ECOSYSTEM = "Community & Ecosystem DAO"
    BUSINESS_MERCHANT = "Business & Merchant DAO"
    INNOVATION_DEVELOPMENT = "Innovation & Development DAO"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProposalCategory(str, Enum):
    GOVERNANCE = "governance"
    TECHNICAL = "technical"
    SECURITY = "security"
    BLOCKCHAIN = "blockchain"
    INFRASTRUCTURE = "infrastructure"
    API = "api"
    PRIVACY = "privacy"
    LEGAL = "legal"
    TREASURY = "treasury"
    INVESTMENT = "investment"
    ECONOMICS = "economics"
    DEFI = "defi"
    ASSET = "asset"
    COMMUNITY = "community"
    MARKETING = "marketing"
    PARTNERSHIP = "partnership"
    ECOSYSTEM = "ecosystem"
    ENVIRONMENT = "environment"
    SOCIAL = "social"
    EDUCATION = "education"
    SUPPORT = "support"
    UX = "ux"
    MERCHANT = "merchant"
    NFT = "nft"
    REWARDS = "rewards"
    BUSINESS = "business"
    RESEARCH = "research"
    GOVERNANCE_INNOVATION = "governance_innovation"
    GENERAL = "general"


@dataclass(frozen=True, slots=True)
class CategoryRoute:
    """Resolved governance route for a proposal category."""

    category: ProposalCategory
    domain: GovernanceDomain
    priority: Priority
    batch: str
    description: str

    @property
    def voting_type(self) -> VotingType:
        return VOTING_TYPE_BY_PRIORITY[self.priority]

    def as_dict(self) -> dict[str, str]:
        return {
            "category": self.category.value,
            "domain": self.domain.value,
            "priority": self.priority.value,
            "votingType": self.voting_type.value,
            "batch": self.batch,
            "description": self.description,
        }


VOTING_TYPE_BY_PRIORITY: dict[Priority, VotingType] = {
    Priority.HIGH: VotingType.SUPER_MAJORITY,
    Priority.MEDIUM: VotingType.SIMPLE_MAJORITY,
    Priority.LOW: VotingType.SIMPLE_MAJORITY,
}

PRIORITY_RANK: dict[Priority, int] = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2}

DOMAIN_DESCRIPTIONS: dict[GovernanceDomain, str] = {
    GovernanceDomain.PLATFORM_GOVERNANCE: "Core platform decisions and infrastructure",
    GovernanceDomain.FINANCIAL_TREASURY: "All financial and economic decisions",
    GovernanceDomain.COMMUNITY_ECOSYSTEM: "User engagement and ecosystem growth",
    GovernanceDomain.BUSINESS_MERCHANT: "Merchant relations and business operations",
    GovernanceDomain.INNOVATION_DEVELOPMENT: "New features and technological advancement",
}


def _route(
    category: ProposalCategory,
    domain: GovernanceDomain,
    priority: Priority,
    batch: str,
    description: str,
) -> tuple[ProposalCategory, CategoryRoute]:
    return category, CategoryRoute(category, domain, priority, batch, description)


_P = GovernanceDomain.PLATFORM_GOVERNANCE
_F = GovernanceDomain.FINANCIAL_TREASURY
_C = GovernanceDomain.COMMUNITY_ECOSYSTEM
_B = GovernanceDomain.BUSINESS_MERCHANT
_I = GovernanceDomain.INNOVATION_DEVELOPMENT

CATEGORY_ROUTES: dict[ProposalCategory, CategoryRoute] = dict(
    [
        _route(ProposalCategory.GOVERNANCE, _P, Priority.HIGH, "Core Platform", "Platform-wide decisions and system architecture"),
        _route(ProposalCategory.TECHNICAL, _P, Priority.HIGH, "Technical Infrastructure", "Development, APIs, integrations"),
        _route(ProposalCategory.SECURITY, _P, Priority.HIGH, "Security & Compliance", "Security protocols, audits, compliance"),
        _route(ProposalCategory.BLOCKCHAIN, _P, Priority.HIGH, "Blockchain Integration", "Web3 features, smart contracts, protocols"),
        _route(ProposalCategory.INFRASTRUCTURE, _P, Priority.MEDIUM, "Technical Infrastructure", "Server infrastructure and DevOps"),
        _route(ProposalCategory.API, _P, Priority.MEDIUM, "Technical Infrastructure", "API development and integrations"),
        _route(ProposalCategory.PRIVACY, _P, Priority.HIGH, "Security & Compliance", "Data privacy and GDPR compliance"),
        _route(ProposalCategory.LEGAL, _P, Priority.HIGH, "Security & Compliance", "Legal compliance and regulatory requirements"),
        _route(ProposalCategory.TREASURY, _F, Priority.HIGH, "Treasury Management", "Fund allocation, budget decisions"),
        _route(ProposalCategory.INVESTMENT, _F, Priority.HIGH, "Investment Policies", "Marketplace rules, investment criteria"),
        _route(ProposalCategory.ECONOMICS, _F, Priority.HIGH, "Token Economics", "Token policies, staking rewards"),
        _route(ProposalCategory.DEFI, _F, Priority.HIGH, "Investment Policies", "DeFi integrations and protocols"),
        _route(ProposalCategory.ASSET, _F, Priority.MEDIUM, "Treasury Management", "Asset initiatives and impact projects"),
        _route(ProposalCategory.COMMUNITY, _C, Priority.MEDIUM, "Community Engagement", "User programs, community events"),
        _route(ProposalCategory.MARKETING, _C, Priority.MEDIUM, "Marketing & Growth", "Brand initiatives, user acquisition"),
        _route(ProposalCategory.PARTNERSHIP, _C, Priority.HIGH, "Partnerships", "Strategic alliances, integrations"),
        _route(ProposalCategory.ECOSYSTEM, _C, Priority.HIGH, "Ecosystem Growth", "Platform expansion and growth"),
        _route(ProposalCategory.ENVIRONMENT, _C, Priority.MEDIUM, "Social Impact", "Environmental impact initiatives"),
        _route(ProposalCategory.SOCIAL, _C, Priority.MEDIUM, "Social Impact", "Social impact projects"),
        _route(ProposalCategory.EDUCATION, _C, Priority.LOW, "Community Engagement", "User education and documentation"),
        _route(ProposalCategory.SUPPORT, _C, Priority.LOW, "Community Engagement", "Customer support policies"),
        _route(ProposalCategory.UX, _C, Priority.MEDIUM, "Community Engagement", "User interface and experience improvements"),
        _route(ProposalCategory.MERCHANT, _B, Priority.MEDIUM, "Merchant Relations", "Onboarding, support, policies"),
        _route(ProposalCategory.NFT, _B, Priority.MEDIUM, "NFT Collections", "NFT policies, collection management"),
        _route(ProposalCategory.REWARDS, _B, Priority.MEDIUM, "Loyalty Programs", "Rewards systems, referral programs"),
        _route(ProposalCategory.BUSINESS, _B, Priority.HIGH, "Merchant Relations", "Business development and strategy"),
        _route(ProposalCategory.RESEARCH, _I, Priority.MEDIUM, "Research & Development", "Innovation projects, pilot programs"),
        _route(ProposalCategory.GOVERNANCE_INNOVATION, _I, Priority.MEDIUM, "Product Development", "Governance innovation and voting mechanisms"),
        _route(ProposalCategory.GENERAL, _P, Priority.HIGH, "Core Platform", "General platform decisions"),
    ]
)

_missing = set(ProposalCategory) - set(CATEGORY_ROUTES)
if _missing:  # pragma: no cover - guards edits to the table above
    raise RuntimeError(f"Unrouted proposal categories: {sorted(item.value for item in _missing)}")

FAIL_CLOSED_ROUTE = CATEGORY_ROUTES[ProposalCategory.GENERAL]


def parse_category(raw: str | ProposalCategory | None) -> ProposalCategory | None:
    """Return the known category for ``raw`` or ``None`` when unrecognised."""

    if isinstance(raw, ProposalCategory):
        return raw
    if not raw:
        return None
    try:
        return ProposalCategory(raw.strip().lower())
    except ValueError:
        return None


def route_category(raw: str | ProposalCategory | None) -> CategoryRoute:
    """Resolve a category, failing closed to the Core Platform route."""

    category = parse_category(raw)
    if category is None:
        return FAIL_CLOSED_ROUTE
    return CATEGORY_ROUTES[category]


def voting_type_for(raw: str | ProposalCategory | None) -> VotingType:
    return route_category(raw).voting_type


def available_categories() -> list[CategoryRoute]:
    return list(CATEGORY_ROUTES.values())


def _group(routes: Iterable[CategoryRoute], key) -> dict[str, list[CategoryRoute]]:
    grouped: dict[str, list[CategoryRoute]] = {}
    for route in routes:
        grouped.setdefault(key(route), []).append(route)
    return grouped


def categories_by_domain() -> dict[str, list[CategoryRoute]]:
    return _group(CATEGORY_ROUTES.values(), lambda route: route.domain.value)


def categories_by_priority() -> dict[str, list[CategoryRoute]]:
    grouped: dict[str, list[CategoryRoute]] = {priority.value: [] for priority in Priority}
    for route in CATEGORY_ROUTES.values():
        grouped[route.priority.value].append(route)
    return grouped


def categories_by_batch() -> dict[str, dict[str, list[CategoryRoute]]]:
    return {
        domain: _group(routes, lambda route: route.batch)
        for domain, routes in categories_by_domain().items()
    }


def main_domains() -> list[dict[str, str]]:
    return [
        {"name": domain.value, "description": DOMAIN_DESCRIPTIONS[domain]}
        for domain in GovernanceDomain
    ]


__all__ = [
    "CATEGORY_ROUTES",
    "CategoryRoute",
    "FAIL_CLOSED_ROUTE",
    "GovernanceDomain",
    "PRIORITY_RANK",
    "Priority",
    "ProposalCategory",
    "available_categories",
    "categories_by_batch",
    "categories_by_domain",
    "categories_by_priority",
    "main_domains",
    "parse_category",
    "route_category",
    "voting_type_for",
]
