"""Fixed marker strings for locating things on the chess page."""

# Element carrying the signed-in user's handle.
IDENTITY_SELECTOR = "#notifications-request"
IDENTITY_ATTRIBUTE = "username"

# Controls only present while a game is being played.
ACTIVE_GAME_SELECTOR = ".resign-button-component, .draw-button-component"

# Game-over panel and its text parts.
RESULT_PANEL_SELECTOR = ".board-modal-container-container"
RESULT_TITLE_SELECTOR = ".header-title-component"
RESULT_REASON_SELECTOR = ".header-subtitle-component"

# Player blocks, top then bottom of the board.
PLAYER_BLOCK_SELECTOR = ".cc-user-block-component"
PLAYER_NAME_SELECTOR = ".cc-user-username-component"

# Every way to start a new game.
NEW_GAME_CONTROL_SELECTORS = (
    ".new-game-buttons-buttons",
    ".new-game-component",
    ".game-over-buttons-component",
    ".tabs-tab[data-tab=newGame]",
)

DISABLED_MARKER = "cb-hidden"
DISABLED_MARKER_CSS = f".{DISABLED_MARKER} {{ visibility: hidden !important; }}"
