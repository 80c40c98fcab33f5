# Models package - database models for the distribution engine
from campaign_pool.models.user import User, UserRole
from campaign_pool.models.campaign import Campaign, CampaignStatus, PayoutStatus
from campaign_pool.models.submission import Submission, SubmissionStatus
from campaign_pool.models.pool_stats import CampaignPoolStats
from campaign_pool.models.transaction import Transaction, TransactionType, TransactionStatus
from campaign_pool.models.audit import MetricFetchLog, FetchSources, FetchStatuses
