"""Textual CSS for omniread."""

APP_CSS = """
/* ── Global ────────────────────────────────── */
Screen {
    background: $surface;
}

/* ── Library Screen ────────────────────────── */
#library-header {
    dock: top;
    height: 3;
    padding: 1 2;
    background: $primary;
    color: $text;
    text-style: bold;
}

#ingest-status {
    dock: bottom;
    height: 1;
    padding: 0 2;
    background: $surface-darken-1;
    color: $warning;
    text-style: italic;
    display: none;
}

#ingest-status.busy {
    display: block;
}

#book-table {
    height: 1fr;
}

#empty-library {
    padding: 4 2;
    color: $text-muted;
    text-align: center;
    width: 100%;
    display: none;
}

#empty-library.visible {
    display: block;
}

/* ── Reader Screen ─────────────────────────── */
#reader-header {
    dock: top;
    height: 1;
    background: $primary;
    color: $text;
    padding: 0 2;
    text-style: bold;
}

#reader-body {
    height: 1fr;
}

#toc-sidebar {
    width: 30;
    dock: left;
    display: none;
    background: $surface-darken-1;
    border-right: solid $primary;
}

#toc-sidebar.visible {
    display: block;
}

#toc-list {
    height: 1fr;
}

#toc-title {
    padding: 1 1;
    text-style: bold;
    background: $primary-darken-1;
    color: $text;
    text-align: center;
    height: 3;
}

#content-text {
    height: 1fr;
    padding: 1 2;
    overflow: hidden;
}

#content-text.failed {
    color: $error;
    text-align: center;
    padding: 4 2;
}

/* ── Confirm dialog ────────────────────────── */
#confirm-dialog {
    width: 60;
    height: 9;
    background: $surface;
    border: solid $error;
    padding: 1 2;
}

#confirm-msg {
    text-align: center;
    margin: 1 0;
}

#confirm-buttons {
    align: center middle;
    height: 3;
}

#confirm-buttons Button {
    margin: 0 2;
}

/* ── List items ────────────────────────────── */
.toc-item {
    padding: 0 1;
    height: 1;
}

.toc-item:hover {
    background: $primary-darken-1;
}
"""
