# ui/dashboard_ui.py
"""
Pulseboard Desktop UI — v1.0.0

Thin tkinter window over DashboardSession. All state lives in the
session; this file only lays out widgets and redraws from snapshot().

Frame loop: root.after(FRAME_MS) ticks the animator and redraws.
"""

import logging
import tkinter as tk
from tkinter import messagebox, simpledialog

from core.errors import PulseError
from core.records import DIFFICULTY_LABELS

from .dashboard_session import DashboardSession


logger = logging.getLogger("pulse.ui")

FRAME_MS = 50

MOOD_COLORS = {
    "calm": "#2e7d32",
    "busy": "#f9a825",
    "stress": "#c62828",
}


class DashboardApp:
    def __init__(self, session: DashboardSession, title: str = "Pulseboard"):
        self.session = session
        self.root = tk.Tk()
        self.root.title(title)
        self._task_ids = []
        self._flow_ids = []
        self._build_layout()
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _build_layout(self):
        # Mood header
        header = tk.Frame(self.root)
        header.pack(fill=tk.X, padx=8, pady=8)
        self.mood_var = tk.StringVar(value="Loading...")
        tk.Label(header, textvariable=self.mood_var, font=("TkDefaultFont", 16, "bold")).pack(side=tk.LEFT)
        self.edit_btn = tk.Button(header, text="Edit", command=self._on_edit_toggle)
        self.edit_btn.pack(side=tk.RIGHT)

        # Segmented load bar
        self.bar = tk.Canvas(self.root, height=18, highlightthickness=0, bg="#eeeeee")
        self.bar.pack(fill=tk.X, padx=8)

        # Priorities
        self.task_list = tk.Listbox(self.root, height=10)
        self.task_list.pack(fill=tk.BOTH, expand=True, padx=8, pady=(8, 0))
        task_btns = tk.Frame(self.root)
        task_btns.pack(fill=tk.X, padx=8)
        self.task_buttons = [
            tk.Button(task_btns, text="Add", command=self._on_add_task),
            tk.Button(task_btns, text="Rename", command=self._on_rename_task),
            tk.Button(task_btns, text="Delete", command=self._on_delete_task),
            tk.Button(task_btns, text="Set tag", command=self._on_set_tag),
            tk.Button(task_btns, text="New tag", command=self._on_new_tag),
            tk.Button(task_btns, text="Remove tag", command=self._on_remove_tag),
        ]
        for btn in self.task_buttons:
            btn.pack(side=tk.LEFT)

        # Flowkeeper
        self.flow_var = tk.StringVar(value="Flow 0%")
        tk.Label(self.root, textvariable=self.flow_var).pack(anchor=tk.W, padx=8, pady=(8, 0))
        self.flow_list = tk.Listbox(self.root, height=5)
        self.flow_list.pack(fill=tk.X, padx=8)
        flow_btns = tk.Frame(self.root)
        flow_btns.pack(fill=tk.X, padx=8)
        tk.Button(flow_btns, text="Complete", command=self._on_complete_flow).pack(side=tk.LEFT)
        tk.Button(flow_btns, text="Add task", command=self._on_add_flow).pack(side=tk.LEFT)

        # Usage counters
        self.usage_var = tk.StringVar(value="")
        tk.Label(self.root, textvariable=self.usage_var, font=("TkFixedFont", 11)).pack(
            anchor=tk.W, padx=8, pady=8
        )

        self.status_var = tk.StringVar(value="")
        tk.Label(self.root, textvariable=self.status_var, fg="#666666").pack(anchor=tk.W, padx=8)

    # ─────────────────────────────────────────────────────────────────────
    # Rendering
    # ─────────────────────────────────────────────────────────────────────

    def _render(self):
        snap = self.session.snapshot()

        if snap.loading:
            self.mood_var.set("Loading...")
        else:
            self.mood_var.set(f"{snap.mood_emoji} {snap.mood_label}  ({snap.load_percent:.0f}%)")
        self.edit_btn.configure(text="Done" if snap.editing else "Edit")

        self.bar.delete("all")
        width = self.bar.winfo_width() or 1
        filled = width * snap.load_percent / 100
        x = 0.0
        for seg in snap.segments:
            w = filled * seg.width_percent / 100
            self.bar.create_rectangle(x, 0, x + w, 18, fill=MOOD_COLORS[seg.mood.value], width=0)
            x += w

        self._fill_list(self.task_list, [
            f"{t.label or self.session.tag_label(t.tag)}  [R{t.risk} U{t.urgency} I{t.importance}]"
            for t in snap.tasks
        ])
        self._task_ids = [t.id for t in snap.tasks]
        state = tk.NORMAL if snap.editing else tk.DISABLED
        for btn in self.task_buttons:
            btn.configure(state=state)

        self.flow_var.set(f"Flow {snap.flow_percent:.1f}%")
        self._fill_list(self.flow_list, [
            f"{t.label}  ({DIFFICULTY_LABELS.get(t.difficulty, 'Easy')})" for t in snap.flow_tasks
        ])
        self._flow_ids = [t.id for t in snap.flow_tasks]

        self.usage_var.set(f"{snap.tokens:,} tokens   {snap.lines:,} lines")
        self.status_var.set(snap.error or "")

    @staticmethod
    def _fill_list(listbox: tk.Listbox, rows):
        if list(listbox.get(0, tk.END)) == rows:
            return
        listbox.delete(0, tk.END)
        for row in rows:
            listbox.insert(tk.END, row)

    def _frame(self):
        self.session.tick_animation()
        self._render()
        self.root.after(FRAME_MS, self._frame)

    # ─────────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────────

    def _selected(self, listbox: tk.Listbox, ids):
        sel = listbox.curselection()
        if not sel or sel[0] >= len(ids):
            return None
        return ids[sel[0]]

    def _on_edit_toggle(self):
        if self.session.editing:
            if not self.session.exit_edit_mode():
                messagebox.showerror("Pulseboard", self.session.last_error or "Save failed")
            return
        password = simpledialog.askstring("Pulseboard", "Password:", show="*", parent=self.root)
        if password and not self.session.login(password):
            messagebox.showerror("Pulseboard", self.session.last_error or "Invalid password")

    def _on_add_task(self):
        self.session.add_task()

    def _on_rename_task(self):
        task_id = self._selected(self.task_list, self._task_ids)
        if task_id is None:
            return
        label = simpledialog.askstring("Pulseboard", "Label:", parent=self.root)
        if label:
            self.session.update_task(task_id, label=label.strip())

    def _on_delete_task(self):
        task_id = self._selected(self.task_list, self._task_ids)
        if task_id is not None:
            self.session.delete_task(task_id)

    def _on_set_tag(self):
        task_id = self._selected(self.task_list, self._task_ids)
        if task_id is None:
            return
        value = simpledialog.askstring("Pulseboard", "Tag value:", parent=self.root)
        if not value:
            return
        if value.strip() not in [t.value for t in self.session.tags]:
            messagebox.showerror("Pulseboard", f"Unknown tag: {value}")
            return
        self.session.update_task(task_id, tag=value.strip())

    def _on_new_tag(self):
        label = simpledialog.askstring("Pulseboard", "Tag label:", parent=self.root)
        if not label:
            return
        try:
            self.session.add_tag(label)
        except PulseError as e:
            messagebox.showerror("Pulseboard", e.message)

    def _on_remove_tag(self):
        value = simpledialog.askstring("Pulseboard", "Tag value to remove:", parent=self.root)
        if not value:
            return
        try:
            self.session.delete_tag(value.strip())
        except PulseError as e:
            messagebox.showerror("Pulseboard", e.message)

    def _on_add_flow(self):
        if self.session.editing:
            self.session.add_flow_task()

    def _on_complete_flow(self):
        task_id = self._selected(self.flow_list, self._flow_ids)
        if task_id is None:
            return
        if not self.session.complete_flow_task(task_id) and self.session.last_error:
            messagebox.showerror("Pulseboard", self.session.last_error)

    def _on_close(self):
        logger.info("window closed; stopping timers")
        self.session.stop()
        self.root.destroy()

    def run(self):
        """Load data, start timers and enter the main loop."""
        self.session.load_all()
        self.session.start()
        self._frame()
        self.root.mainloop()
