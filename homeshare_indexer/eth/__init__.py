"""Chain access: RPC client, ABIs, log decoding and view calls."""
