from .market_account_codec import decode_market, describe_program_error, instruction_discriminator
from .solana_chain_client import SolanaChainClient, load_keypair
from .supabase_repository import SupabaseIndexRepository
from .job_lease import SupabaseJobLease

__all__ = [
    "decode_market",
    "describe_program_error",
    "instruction_discriminator",
    "SolanaChainClient",
    "load_keypair",
    "SupabaseIndexRepository",
    "SupabaseJobLease",
]
