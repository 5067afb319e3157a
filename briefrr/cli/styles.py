"""
CSS styles for Briefrr CLI components
"""

SETUP_SCREEN_CSS = """
SetupScreen {
    align: center middle;
}

#setup-container {
    width: 80;
    height: auto;
    padding: 2;
    border: solid $primary;
}

#api-input {
    margin: 1 0;
}

#setup-error {
    color: $error;
    height: auto;
}

#button-container {
    align: center middle;
    height: auto;
    margin-top: 1;
}
"""

DRAWER_CSS = """
#drawer {
    height: 100%;
    layout: vertical;
    background: #1f2430;
    padding: 0 1 1 1;
}

#page-title {
    height: 1;
    color: #bdc6d6;
    padding: 0 1;
}

#mode-bar {
    height: 3;
}

#mode-bar Button {
    margin: 0 1 0 0;
    min-width: 14;
}

#mode-bar Button.active {
    background: #6c8cff;
    color: #ffffff;
}

#query-container {
    height: auto;
    display: none;
}

#query-container.visible {
    display: block;
}

#content-scroll {
    border: solid #3a4152;
    background: #1f2430;
    padding: 0 1;
}

#loading {
    color: #9aa5b8;
    height: auto;
}

#error-container {
    height: auto;
    display: none;
    border: solid $error;
    padding: 0 1;
}

#error-container.visible {
    display: block;
}

#error-message {
    color: $error;
}

#countdown {
    color: $warning;
    height: auto;
}

#retry-btn {
    display: none;
}

#retry-btn.visible {
    display: block;
}
"""
