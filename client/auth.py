"""
Authentication: wallet setup and API credentials for order submission.
"""

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds

from config import Config


def build_clob_client(cfg: Config) -> ClobClient:
    """
    Build an authenticated ClobClient ready for trading.
    Steps:
      1. Create L1 client with the signing key and funding address
      2. Attach the configured L2 API credentials, deriving them if any are missing
      3. Return fully authenticated client
    """
    client = ClobClient(
        host=cfg.poly_http_url,
        chain_id=cfg.chain_id,
        key=cfg.poly_private_key,
        signature_type=cfg.signature_type,
        funder=cfg.poly_funder or None,
    )

    if cfg.poly_api_key and cfg.poly_api_secret and cfg.poly_api_passphrase:
        creds = ApiCreds(
            api_key=cfg.poly_api_key,
            api_secret=cfg.poly_api_secret,
            api_passphrase=cfg.poly_api_passphrase,
        )
    else:
        creds = client.create_or_derive_api_creds()
    client.set_api_creds(creds)

    return client
