WIDTH = 64
HEIGHT = 64
MAX_PLAYER_NAME_LENGTH = 32
NUM_COINS = 100

# (upper rank bound, value) in placement order
COIN_TIERS = (
    (50, 1),
    (75, 2),
    (95, 5),
    (100, 10),
)
