from campaignsync.realtime.nonce import generate_nonce


def test_generate_nonce_returns_url_safe_unique_values() -> None:
    nonces = {generate_nonce() for _ in range(50)}

    assert len(nonces) == 50
    assert all(nonce and "/" not in nonce and "+" not in nonce for nonce in nonces)
