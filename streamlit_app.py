"""
Main Streamlit application for the JSON Schema builder.
Imports a pasted JSON Schema into the field tree, previews the recompiled
document, and saves/loads named schemas.
"""

import streamlit as st
from pathlib import Path
import logging

from schema_builder.config_loader import load_config, validate_config, get_config_value, get_default_config
from schema_builder.diff_utils import snapshot, calculate_forest_diff, get_change_summary, format_changes
from schema_builder.reusable_types import find_dangling_references
from schema_builder.request_builders import PROVIDERS, build_request, to_curl
from schema_builder.schema_compiler import compile_with_diagnostics, to_json
from schema_builder.schema_exceptions import SchemaBuilderError
from schema_builder.schema_importer import import_json_schema, parse_json_schema_text
from schema_builder.schema_store import SchemaLibrary, YamlFileStore


def get_logging_level(level_str):
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


config = load_config()
if not validate_config(config):
    config = get_default_config()

log_level_str = get_config_value(config, 'logging', 'level', 'INFO')
logging.basicConfig(level=get_logging_level(log_level_str))
logger = logging.getLogger(__name__)
logger.info(f"Logging configured to level: {log_level_str}")

st.set_page_config(
    page_title=get_config_value(config, 'app', 'name', 'JSON Schema Builder'),
    page_icon="🧩",
    layout="wide"
)

NOTIFY_ICONS = {
    'success': '✅',
    'info': 'ℹ️',
    'warning': '⚠️',
    'error': '❌'
}


def notify(message: str, notification_type: str = 'info') -> None:
    """Show a non-blocking toast notification."""
    st.toast(message, icon=NOTIFY_ICONS.get(notification_type, 'ℹ️'))


def get_library() -> SchemaLibrary:
    directory = get_config_value(config, 'storage', 'directory', 'saved_schemas')
    return SchemaLibrary(YamlFileStore(Path(directory)))


def init_session_state(library: SchemaLibrary) -> None:
    """Restore the autosaved tree on first run."""
    if 'fields' in st.session_state:
        return
    try:
        fields, reusable_types = library.load_autosave()
    except SchemaBuilderError as e:
        logger.error(f"Could not restore autosave: {e}")
        fields, reusable_types = [], []
    st.session_state.fields = fields
    st.session_state.reusable_types = reusable_types
    st.session_state.saved_snapshot = snapshot(fields, reusable_types)
    st.session_state.diagnostics = []


def set_tree(library: SchemaLibrary, fields, reusable_types, mark_saved: bool = False) -> None:
    st.session_state.fields = fields
    st.session_state.reusable_types = reusable_types
    if mark_saved:
        st.session_state.saved_snapshot = snapshot(fields, reusable_types)
    try:
        library.autosave(fields, reusable_types)
    except SchemaBuilderError as e:
        logger.error(f"Autosave failed: {e}")
        notify(e.message, 'error')


def render_sidebar(library: SchemaLibrary) -> None:
    st.sidebar.title("Saved schemas")

    name = st.sidebar.text_input("Schema name")
    overwrite = st.sidebar.checkbox("Overwrite existing", value=False)
    if st.sidebar.button("💾 Save"):
        try:
            saved_name = library.save(name, st.session_state.fields, st.session_state.reusable_types, overwrite)
            st.session_state.saved_snapshot = snapshot(st.session_state.fields, st.session_state.reusable_types)
            notify(f"Schema \"{saved_name}\" saved successfully!", 'success')
        except ValueError as e:
            notify(str(e), 'error')
        except SchemaBuilderError as e:
            notify(e.message, 'error')

    names = library.list_names()
    if not names:
        st.sidebar.info("No saved schemas yet")
        return

    selected = st.sidebar.selectbox("Load schema", names)
    col1, col2 = st.sidebar.columns(2)
    if col1.button("📂 Load"):
        try:
            fields, reusable_types = library.load(selected)
            set_tree(library, fields, reusable_types, mark_saved=True)
            notify(f"Schema \"{selected}\" loaded successfully!", 'success')
        except SchemaBuilderError as e:
            notify(e.message, 'error')
    if col2.button("🗑️ Delete"):
        try:
            library.delete(selected)
            notify(f"Schema \"{selected}\" deleted successfully!", 'success')
        except SchemaBuilderError as e:
            notify(e.message, 'error')


def render_import(library: SchemaLibrary) -> None:
    st.subheader("Import JSON Schema")
    text = st.text_area("Paste a JSON Schema", height=240)
    if st.button("📥 Import"):
        try:
            document = parse_json_schema_text(text)
        except SchemaBuilderError as e:
            st.error(e.message)
            for suggestion in e.recovery_suggestions:
                st.caption(f"• {suggestion}")
            return
        result = import_json_schema(document)
        set_tree(library, result.fields, result.reusable_types)
        st.session_state.diagnostics = result.diagnostics
        notify(
            f"Imported {len(result.fields)} fields and {len(result.reusable_types)} reusable types",
            'success' if not result.diagnostics else 'warning'
        )


def render_preview() -> None:
    st.subheader("Compiled JSON Schema")
    fields = st.session_state.fields
    reusable_types = st.session_state.reusable_types

    result = compile_with_diagnostics(
        fields,
        reusable_types,
        title=get_config_value(config, 'compiler', 'default_title'),
        include_default_titles=get_config_value(config, 'compiler', 'include_default_titles', False)
    )
    st.code(to_json(result.document), language='json')

    diagnostics = [*st.session_state.diagnostics, *result.diagnostics]
    dangling = find_dangling_references(fields, reusable_types)
    if dangling:
        st.warning(f"{len(dangling)} reference field(s) point to a missing reusable type: "
                   + ", ".join(f.name or f.id for f in dangling))
    if diagnostics:
        with st.expander(f"Diagnostics ({len(diagnostics)})"):
            for diagnostic in diagnostics:
                st.write(f"**{diagnostic.type}** `{diagnostic.path or '<root>'}`: {diagnostic.message}")

    diff = calculate_forest_diff(st.session_state.saved_snapshot, snapshot(fields, reusable_types))
    summary = get_change_summary(diff)
    if summary['total']:
        with st.expander(f"Unsaved changes ({summary['total']})"):
            for line in format_changes(diff):
                st.write(line)

    st.subheader("LLM request")
    providers = sorted(PROVIDERS)
    default_provider = get_config_value(config, 'llm', 'provider', 'openai')
    provider = st.selectbox(
        "Provider", providers,
        index=providers.index(default_provider) if default_provider in providers else 0
    )
    prompt = st.text_area("Prompt", value=get_config_value(config, 'llm', 'user_prompt', ''))
    request = build_request(provider, result.document, prompt)
    st.code(to_curl(request), language='bash')


def main():
    """Main application entry point."""
    library = get_library()
    init_session_state(library)

    st.title(get_config_value(config, 'app', 'name', 'JSON Schema Builder'))
    render_sidebar(library)
    col1, col2 = st.columns(2)
    with col1:
        render_import(library)
    with col2:
        render_preview()


if __name__ == "__main__":
    main()
