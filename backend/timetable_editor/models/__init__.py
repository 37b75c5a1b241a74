from timetable_editor.models.editor_snapshot import EditorSnapshot  # noqa: F401
