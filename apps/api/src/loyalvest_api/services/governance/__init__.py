"""Governance service exports."""

from .category_router import (  # noqa: F401
    CATEGORY_ROUTES,
    CategoryRoute,
    GovernanceDomain,
    Priority,
    ProposalCategory,
    available_categories,
    categories_by_batch,
    categories_by_domain,
    categories_by_priority,
    main_domains,
    route_category,
    voting_type_for,
)
from .change_governor import (  # noqa: F401
    ApprovalCheck,
    ChangeGovernor,
    ChangeProposalReceipt,
    ChangeRecord,
)
from .parameters import APPROVED_PROPOSAL_STATUS, EngineParameters, GOVERNED_PARAMETERS  # noqa: F401
from .repository import (  # noqa: F401
    ChangeRequestRepository,
    EngineParameterRepository,
    GovernanceProposalRepository,
)
