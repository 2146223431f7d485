# powchain

A small proof-of-work blockchain node. Each node keeps a chain of blocks hashed
with SHA-512, answers peers over TCP, and mines new blocks continuously. When a
node mines a block it broadcasts a `FOUNDBLOCK` packet, and nodes that are
behind download the blocks they are missing from the sender.

## Installing

```
pip install .
```

## Running a node

Start the first node of a new network. It mines a genesis block (difficulty 2),
starts its server and then keeps mining:

```
powchain --port 8080
```

Start a second node that joins the first one, replaces its chain with the
first node's chain and mines alongside it:

```
powchain --port 8081 --init-host 127.0.0.1 --init-port 8080
```

Options:

- `--config PATH` – YAML configuration file (default `config.yaml`). If the
  file cannot be read or parsed, built-in defaults are used.
- `--port N` – port to listen on. Any value other than 8080 overrides the
  port from the configuration.
- `--init-host HOST`, `--init-port N` – an existing peer to join. Both must be
  given (and the port non-zero); otherwise a new network is started.

The server listens on all interfaces. The configured `host` is the address
this node advertises to peers. The node runs until interrupted.

## Configuration

```yaml
blockchain:
  difficulty_calculation_blocks: 50   # recalculate difficulty every N blocks
  target_block_time: 20               # desired seconds between blocks
network:
  host: 127.0.0.1
  port: 8080
miner:
  network_sync_interval: 1            # seconds between hash-rate reports / restarts
  max_nonce: 4294967296
```

These are also the built-in defaults (`powchain.config.default_config()`).
When a file is loaded, keys missing from it take the value zero (or an empty
string), not the defaults above, so give every key.

Difficulty is the number of leading `0` characters the URL-safe base64 hash
must have. Every `difficulty_calculation_blocks` blocks the average block time
is compared with `target_block_time`: more than 125% lowers the difficulty by
one (not below zero), less than 75% raises it by one. A mined block never has
a difficulty below 1.

Every `network_sync_interval` seconds the miner logs its hash rate and starts
over on top of the latest block, so blocks received from peers are picked up.

## Using it as a library

```python
from powchain.chain import Blockchain
from powchain.block import Block

chain = Blockchain(difficulty_calculation_blocks=50, target_block_time=20)
genesis = chain.create_genesis_block()

block = Block.new(1, genesis.next_block_difficulty, genesis.next_block_difficulty,
                  "data", genesis.hash)
block.mine()
chain.add_block(block)          # raises ChainError if the block does not fit
print(chain)                    # Blockchain with 2 blocks
```

Modules:

- `powchain.block` – `Block` (`new`, `compute_hash`, `mine`, `validate`,
  `to_json`/`from_json`) and `BlockError`.
- `powchain.chain` – `Blockchain` (adding and validating blocks, difficulty
  adjustment, `get_blocks`, `replace_chain`) and `ChainError`.
- `powchain.config` – `load()`, `default_config()` and the `Config` dataclasses.
- `powchain.peer` – `Peer` with `send_tcp()`, and `generate_peer_id()`.
- `powchain.packet` – `Packet`, `PacketType`, `PacketName`; packet content
  travels as base64 inside JSON.
- `powchain.broadcast` – `BroadcastManager`, which drops repeated broadcasts
  by index.
- `powchain.manager` – `Manager`: peer list, packet handling
  (`process_packet`), `start_server`, `join_network`, `sync_chain`,
  `download_blocks`, `sync_full_chain_from_peer`, and `Manager.joining()`.
- `powchain.miner` – `Miner` (`mine_next`, `run`, `stop`) and `start()`.
- `powchain.cli` – `main()`, the `powchain` command.

## What it does not do

- The chain lives in memory only; nothing is written to disk, and a restarted
  node starts from a new genesis block or from a peer.
- Blocks carry a fixed data string; there are no transactions, wallets or
  rewards.
- Blocks downloaded from peers are appended without verification, and there
  is no fork resolution.
- Each TCP exchange is a single read of at most 8192 bytes, so large block
  downloads are cut short.

## Tests

```
pip install .[test]
pytest
```