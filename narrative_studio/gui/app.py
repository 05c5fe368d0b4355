from __future__ import annotations

import os
import queue
import threading
from dataclasses import replace
from typing import Dict, Optional

import customtkinter as ctk

from narrative_studio.config import load_config
from narrative_studio.controllers import Studio
from narrative_studio.gateway import GenerationGateway
from narrative_studio.gui.utils_images import data_url_to_ctkimage
from narrative_studio.services import connectivity_probe, openrouter_chat_probe, openrouter_models_probe
from narrative_studio.services.storage import default_filename, save_data_url_to_path
from narrative_studio.types import THUMBNAIL_ID, GenerationState, RenderTarget

SCENE_PREVIEW_SIZE = (320, 320)
THUMBNAIL_PREVIEW_SIZE = (480, 270)
COPY_FEEDBACK_MS = 2000


class StudioApp(ctk.CTk):
    def __init__(self) -> None:
        super().__init__()
        self.title("Visual Narrative Studio - Ubah Cerita Jadi Visual")
        self.geometry("1400x900")
        self.minsize(1000, 700)

        self.cfg = load_config()
        self.logs: list[str] = []
        self.log_queue: "queue.Queue[str]" = queue.Queue()
        self.gateway = GenerationGateway(self.cfg, on_log=self._on_log)
        self.studio = Studio(self.gateway, on_log=self._on_log)
        self.probe_events: "queue.Queue[tuple[bool, str]]" = queue.Queue()

        self.scene_widgets: Dict[str, dict] = {}
        self.thumbnail_widgets: Optional[dict] = None

        self._build_ui()
        self._setup_keyboard_shortcuts()
        self.after(50, self._drain_events)
        self.after(150, self._post_init_checks)

    # ---------- UI ----------
    def _build_ui(self) -> None:
        """Build the main UI layout."""
        self.grid_rowconfigure(0, weight=1)
        self.grid_rowconfigure(1, weight=0)
        self.grid_columnconfigure(0, weight=1)
        self.grid_columnconfigure(1, weight=0)

        self._build_main_content()
        self._build_right_sidebar()
        self._build_status_bar()

    def _build_main_content(self) -> None:
        self.main = ctk.CTkScrollableFrame(self, fg_color=("gray95", "gray10"))
        self.main.grid(row=0, column=0, sticky="nsew", padx=1, pady=1)

        self._build_narrative_section()
        self.results_frame = ctk.CTkFrame(self.main, fg_color="transparent")
        self.results_frame.pack(fill="both", expand=True, padx=20, pady=(0, 20))

    def _build_narrative_section(self) -> None:
        """Build the narrative input form."""
        section = ctk.CTkFrame(self.main, fg_color="transparent")
        section.pack(fill="x", padx=20, pady=(20, 12))

        title = ctk.CTkLabel(section, text="Ubah Cerita Jadi Visual", font=ctk.CTkFont(size=22, weight="bold"))
        title.pack(anchor="w")
        intro = ctk.CTkLabel(
            section,
            text=(
                "Masukkan cerita pendek, skenario, atau deskripsi mimpi Anda. AI akan memecahnya menjadi "
                "adegan dan membuat prompt visual + Thumbnail YouTube."
            ),
            font=ctk.CTkFont(size=12),
            text_color=("gray40", "gray60"),
            wraplength=760,
            justify="left",
        )
        intro.pack(anchor="w", pady=(4, 12))

        header = ctk.CTkFrame(section, fg_color="transparent")
        header.pack(fill="x")
        ctk.CTkLabel(header, text="📝 Narasi", font=ctk.CTkFont(size=14, weight="bold")).pack(side="left")
        self.lbl_wc = ctk.CTkLabel(header, text="0 words", font=ctk.CTkFont(size=12), text_color=("gray60", "gray40"))
        self.lbl_wc.pack(side="right")

        self.txt_narrative = ctk.CTkTextbox(section, height=160, font=ctk.CTkFont(size=12), fg_color=("gray90", "gray20"))
        self.txt_narrative.pack(fill="x", pady=(8, 8))
        self.txt_narrative.bind("<KeyRelease>", lambda _e: self._update_word_count())

        self.btn_submit = ctk.CTkButton(
            section,
            text="✨ Generate Prompts",
            command=self._submit_narrative,
            height=38,
            font=ctk.CTkFont(size=13),
            fg_color="#4f46e5",
            hover_color="#4338ca",
        )
        self.btn_submit.pack(anchor="w")

        self.lbl_session_msg = ctk.CTkLabel(section, text="", font=ctk.CTkFont(size=12), wraplength=760, justify="left")
        self.lbl_session_msg.pack(anchor="w", pady=(8, 0))

    def _build_right_sidebar(self) -> None:
        """Build the right sidebar with settings and logs."""
        self.right = ctk.CTkFrame(self, width=340, fg_color=("gray95", "gray10"))
        self.right.grid(row=0, column=1, sticky="nse", padx=1, pady=1)
        self.right.grid_propagate(False)

        controls = ctk.CTkFrame(self.right, fg_color="transparent")
        controls.pack(fill="x", padx=20, pady=(20, 0))
        ctk.CTkButton(controls, text="⚙️ Settings", command=self._open_settings, height=30).pack(fill="x", pady=(0, 6))
        self._theme_mode = "dark"
        self.btn_theme_toggle = ctk.CTkButton(controls, text="Switch to Light", command=self._toggle_theme, height=28)
        self.btn_theme_toggle.pack(fill="x", pady=(0, 12))

        self.progress = ctk.CTkProgressBar(controls, mode="indeterminate", height=6, progress_color="#4CAF50")
        self.progress.pack(fill="x")

        logs_section = ctk.CTkFrame(self.right, fg_color="transparent")
        logs_section.pack(fill="both", expand=True, padx=20, pady=20)
        logs_header = ctk.CTkFrame(logs_section, fg_color="transparent")
        logs_header.pack(fill="x")
        ctk.CTkLabel(logs_header, text="📊 Activity Log", font=ctk.CTkFont(size=14, weight="bold")).pack(side="left")
        ctk.CTkButton(
            logs_header,
            text="🗑️ Clear",
            command=self._clear_logs,
            width=60,
            height=28,
            font=ctk.CTkFont(size=10),
            fg_color="transparent",
            text_color=("gray60", "gray40"),
        ).pack(side="right")

        self.txt_logs = ctk.CTkTextbox(logs_section, font=ctk.CTkFont(size=11), fg_color=("gray90", "gray20"))
        self.txt_logs.pack(fill="both", expand=True, pady=(12, 0))

    def _build_status_bar(self) -> None:
        self.status_bar = ctk.CTkFrame(self, height=32, fg_color=("gray90", "gray15"))
        self.status_bar.grid(row=1, column=0, columnspan=2, sticky="we")
        self.status_bar.grid_propagate(False)

        content = ctk.CTkFrame(self.status_bar, fg_color="transparent")
        content.pack(fill="both", expand=True, padx=16, pady=4)
        self.lbl_status = ctk.CTkLabel(
            content,
            text="✨ Ready (Ctrl+Enter to generate prompts, F1 for help)",
            anchor="w",
            font=ctk.CTkFont(size=12),
            text_color=("gray50", "gray70"),
        )
        self.lbl_status.pack(side="left")
        self.lbl_connection_status = ctk.CTkLabel(
            content, text="🔌 Checking connection...", anchor="e", font=ctk.CTkFont(size=11), text_color=("gray60", "gray50")
        )
        self.lbl_connection_status.pack(side="right")

    # ---------- Logging ----------
    def _on_log(self, msg: str) -> None:
        # Workers log too, so lines are handed to the Tk thread via a queue
        self.log_queue.put(msg)

    def _flush_logs(self) -> None:
        try:
            while True:
                msg = self.log_queue.get_nowait()
                self.logs.append(msg)
                self.txt_logs.insert("end", msg + os.linesep)
                self.txt_logs.see("end")
                self._set_status(msg)
        except queue.Empty:
            pass

    def _set_status(self, text: str) -> None:
        self.lbl_status.configure(text=text)

    def _clear_logs(self) -> None:
        self.txt_logs.delete("1.0", "end")
        self.logs.clear()
        self._on_log("✅ Activity log cleared")

    def _update_word_count(self) -> None:
        txt = self.txt_narrative.get("1.0", "end").strip()
        self.lbl_wc.configure(text=f"{len(txt.split())} words")

    def _setup_keyboard_shortcuts(self) -> None:
        self.bind("<Control-Return>", lambda e: self._submit_narrative())
        self.bind("<Control-l>", lambda e: self._clear_logs())
        self.bind(
            "<F1>",
            lambda e: self.show_toast("💡 Keyboard shortcuts:\nCtrl+Enter: Generate Prompts\nCtrl+L: Clear Log", duration_ms=5000),
        )

    def _toggle_theme(self) -> None:
        self._theme_mode = "light" if self._theme_mode == "dark" else "dark"
        ctk.set_appearance_mode(self._theme_mode)
        self.btn_theme_toggle.configure(text="Switch to Dark" if self._theme_mode == "light" else "Switch to Light")
        self._on_log(f"🌓 Theme set to {self._theme_mode.title()}")

    # ---------- Event loop ----------
    def _drain_events(self) -> None:
        self._flush_logs()
        for key in self.studio.drain_events():
            if key == Studio.SESSION:
                self._render_results()
            elif key == THUMBNAIL_ID:
                self._refresh_thumbnail_widget()
            else:
                self._refresh_scene_widget(key)
        try:
            while True:
                ok, msg = self.probe_events.get_nowait()
                icon = "✅" if ok else "❌"
                color = ("green", "lightgreen") if ok else ("red", "darkred")
                self.lbl_connection_status.configure(text=f"{icon} {msg}", text_color=color)
        except queue.Empty:
            pass
        self.after(50, self._drain_events)

    # ---------- Narrative ----------
    def _submit_narrative(self) -> None:
        text = self.txt_narrative.get("1.0", "end-1c")
        if not self.studio.submit_narrative(text):
            self.show_toast("📝 Tulis narasi terlebih dahulu", duration_ms=2500)
            return
        self._render_results()
        self.show_toast("🧠 Memecah narasi menjadi adegan...", duration_ms=2000)

    def _render_session_state(self) -> None:
        session = self.studio.session
        if session.decomposing:
            self.btn_submit.configure(state="disabled", text="⏳ Processing Narrative...")
            self.txt_narrative.configure(state="disabled")
            self.progress.start()
        else:
            self.btn_submit.configure(state="normal", text="✨ Generate Prompts")
            self.txt_narrative.configure(state="normal")
            self.progress.stop()
        if session.error:
            self.lbl_session_msg.configure(text=f"❌ {session.error}", text_color=("#b91c1c", "#fca5a5"))
        elif session.notice:
            self.lbl_session_msg.configure(text=f"ℹ️ {session.notice}", text_color=("gray40", "gray60"))
        else:
            self.lbl_session_msg.configure(text="")

    # ---------- Rendering ----------
    def _render_results(self) -> None:
        """Rebuild the thumbnail card and scene cards from the session."""
        self._render_session_state()
        for child in self.results_frame.winfo_children():
            child.destroy()
        self.scene_widgets = {}
        self.thumbnail_widgets = None

        thumb = self.studio.thumbnail.snapshot()
        scenes = self.studio.scenes.scenes()
        if thumb is None and not scenes:
            return
        if thumb is not None:
            self.thumbnail_widgets = self._create_thumbnail_widget(thumb)
            self._refresh_thumbnail_widget()

        header = ctk.CTkLabel(
            self.results_frame, text=f"🎬 Storyboard ({len(scenes)} Scenes)", font=ctk.CTkFont(size=18, weight="bold")
        )
        header.pack(anchor="w", pady=(16, 8))

        for index, scene in enumerate(scenes, start=1):
            self.scene_widgets[scene.id] = self._create_scene_widget(scene, index)
            self._refresh_scene_widget(scene.id)

    def _create_prompt_editor(self, parent, label: str, prompt: str, on_copy) -> tuple[ctk.CTkTextbox, ctk.CTkButton]:
        row = ctk.CTkFrame(parent, fg_color="transparent")
        row.pack(fill="x")
        ctk.CTkLabel(row, text=label, font=ctk.CTkFont(size=11, weight="bold"), text_color="#a855f7").pack(side="left")
        btn_copy = ctk.CTkButton(row, text="📋 Copy", command=on_copy, width=70, height=24, font=ctk.CTkFont(size=11))
        btn_copy.pack(side="right")

        txt = ctk.CTkTextbox(parent, height=130, font=ctk.CTkFont(size=12))
        txt.insert("1.0", prompt)
        txt.pack(fill="x", pady=(6, 8))
        return txt, btn_copy

    def _create_preview(self, parent, size: tuple[int, int], placeholder: str) -> ctk.CTkLabel:
        frame = ctk.CTkFrame(parent, fg_color=("gray85", "gray30"), width=size[0], height=size[1])
        frame.pack(pady=(0, 8))
        frame.pack_propagate(False)
        preview = ctk.CTkLabel(frame, text=placeholder, font=ctk.CTkFont(size=12), text_color=("gray50", "gray60"))
        preview.pack(fill="both", expand=True)
        preview._image_ref = None  # type: ignore[attr-defined]
        return preview

    def _create_scene_widget(self, scene, index: int) -> dict:
        container = ctk.CTkFrame(self.results_frame, fg_color=("gray90", "gray25"))
        container.pack(fill="x", pady=8)

        left = ctk.CTkFrame(container, fg_color="transparent")
        left.pack(side="left", fill="both", expand=True, padx=16, pady=16)

        ctk.CTkLabel(left, text=f"NARASI ASLI · Scene {index}", font=ctk.CTkFont(size=11, weight="bold"), text_color="#818cf8").pack(anchor="w")
        ctk.CTkLabel(
            left,
            text=f"“{scene.original_text}”",
            font=ctk.CTkFont(size=12, slant="italic"),
            wraplength=520,
            justify="left",
        ).pack(anchor="w", pady=(2, 10))

        txt, btn_copy = self._create_prompt_editor(
            left, "VISUAL PROMPT (EDITABLE)", scene.visual_prompt, lambda sid=scene.id: self._copy_prompt(sid)
        )
        txt.bind("<FocusOut>", lambda _e, sid=scene.id: self._commit_scene_prompt(sid))

        btn_gen = ctk.CTkButton(left, text="🖼️ Generate Visual Preview", command=lambda sid=scene.id: self._generate_scene(sid), height=34)
        btn_gen.pack(anchor="w")
        lbl_error = ctk.CTkLabel(left, text="", font=ctk.CTkFont(size=11), text_color="#f87171")
        lbl_error.pack(anchor="w")

        right = ctk.CTkFrame(container, fg_color="transparent")
        right.pack(side="right", padx=16, pady=16)
        preview = self._create_preview(right, SCENE_PREVIEW_SIZE, "📷 No image generated yet")
        btn_download = ctk.CTkButton(
            right,
            text="💾 Download Image",
            state="disabled",
            command=lambda sid=scene.id, n=index: self._download_image(sid, f"scene-{n}"),
            height=30,
            fg_color="#166534",
            hover_color="#14532d",
        )
        btn_download.pack(fill="x")

        return {
            "container": container,
            "txt": txt,
            "btn_copy": btn_copy,
            "btn_gen": btn_gen,
            "lbl_error": lbl_error,
            "preview": preview,
            "btn_download": btn_download,
            "shown_image": None,
        }

    def _create_thumbnail_widget(self, thumb) -> dict:
        container = ctk.CTkFrame(self.results_frame, fg_color=("#e0e7ff", "#1e1b4b"), border_width=1, border_color="#6366f1")
        container.pack(fill="x", pady=8)

        left = ctk.CTkFrame(container, fg_color="transparent")
        left.pack(side="left", fill="both", expand=True, padx=16, pady=16)
        ctk.CTkLabel(left, text="▶️ Clickbait Thumbnail", font=ctk.CTkFont(size=18, weight="bold")).pack(anchor="w")
        ctk.CTkLabel(
            left,
            text="Prompt ini didesain khusus agar dramatis, ekspresif, dan menarik perhatian (High CTR), merangkum inti cerita.",
            font=ctk.CTkFont(size=12),
            text_color=("gray40", "gray60"),
            wraplength=480,
            justify="left",
        ).pack(anchor="w", pady=(2, 10))

        txt, btn_copy = self._create_prompt_editor(left, "THUMBNAIL PROMPT", thumb.visual_prompt, lambda: self._copy_prompt(THUMBNAIL_ID))
        txt.bind("<FocusOut>", lambda _e: self._commit_thumbnail_prompt())

        btn_gen = ctk.CTkButton(
            left, text="🖼️ Generate Thumbnail", command=self._generate_thumbnail, height=36, fg_color="#dc2626", hover_color="#b91c1c"
        )
        btn_gen.pack(anchor="w")
        lbl_error = ctk.CTkLabel(left, text="", font=ctk.CTkFont(size=11), text_color="#f87171")
        lbl_error.pack(anchor="w")

        right = ctk.CTkFrame(container, fg_color="transparent")
        right.pack(side="right", padx=16, pady=16)
        preview = self._create_preview(right, THUMBNAIL_PREVIEW_SIZE, "▶️ Thumbnail Preview Area")
        btn_download = ctk.CTkButton(
            right,
            text="💾 Download HD Thumbnail",
            state="disabled",
            command=lambda: self._download_image(THUMBNAIL_ID, "thumbnail"),
            height=30,
            fg_color="#166534",
            hover_color="#14532d",
        )
        btn_download.pack(fill="x")

        return {
            "container": container,
            "txt": txt,
            "btn_copy": btn_copy,
            "btn_gen": btn_gen,
            "lbl_error": lbl_error,
            "preview": preview,
            "btn_download": btn_download,
            "shown_image": None,
        }

    def _apply_entity_to_widgets(self, entity: RenderTarget, widgets: dict, *, idle_label: str, again_label: str, busy_label: str, preview_size) -> None:
        generating = entity.state is GenerationState.GENERATING
        if generating:
            widgets["btn_gen"].configure(state="disabled", text=f"⏳ {busy_label}")
        else:
            label = again_label if entity.image_data_url else idle_label
            icon = "🔄" if entity.image_data_url else "🖼️"
            widgets["btn_gen"].configure(state="normal", text=f"{icon} {label}")
        widgets["lbl_error"].configure(text=entity.error or "")

        preview = widgets["preview"]
        if entity.image_data_url and entity.image_data_url != widgets["shown_image"]:
            try:
                cimg = data_url_to_ctkimage(entity.image_data_url, preview_size)
                preview.configure(image=cimg, text="")
                preview._image_ref = cimg  # type: ignore[attr-defined]
                widgets["shown_image"] = entity.image_data_url
            except (ValueError, OSError) as e:
                self._on_log(f"❌ Preview error for {entity.id}: {e}")
                preview.configure(text="❌ Preview error")
        elif not entity.image_data_url and widgets["shown_image"]:
            preview.configure(image=None, text="📷 No image")
            preview._image_ref = None  # type: ignore[attr-defined]
            widgets["shown_image"] = None
        elif not entity.image_data_url:
            preview.configure(text="⏳ Generating..." if generating else "📷 No image generated yet")
        widgets["btn_download"].configure(state="normal" if entity.image_data_url else "disabled")

    def _refresh_scene_widget(self, scene_id: str) -> None:
        widgets = self.scene_widgets.get(scene_id)
        scene = self.studio.scenes.get(scene_id)
        if not widgets or scene is None:
            return
        self._apply_entity_to_widgets(
            scene,
            widgets,
            idle_label="Generate Visual Preview",
            again_label="Regenerate Image",
            busy_label="Generating Image...",
            preview_size=SCENE_PREVIEW_SIZE,
        )

    def _refresh_thumbnail_widget(self) -> None:
        thumb = self.studio.thumbnail.snapshot()
        if not self.thumbnail_widgets or thumb is None:
            return
        self._apply_entity_to_widgets(
            thumb,
            self.thumbnail_widgets,
            idle_label="Generate Thumbnail",
            again_label="Regenerate Thumbnail",
            busy_label="Generating Thumbnail...",
            preview_size=THUMBNAIL_PREVIEW_SIZE,
        )

    # ---------- Per-card intents ----------
    def _editor_text(self, widgets: Optional[dict]) -> Optional[str]:
        if not widgets:
            return None
        return widgets["txt"].get("1.0", "end-1c")

    def _commit_scene_prompt(self, scene_id: str) -> None:
        text = self._editor_text(self.scene_widgets.get(scene_id))
        scene = self.studio.scenes.get(scene_id)
        if text is not None and scene is not None and text != scene.visual_prompt:
            self.studio.scenes.update_prompt(scene_id, text)

    def _commit_thumbnail_prompt(self) -> None:
        text = self._editor_text(self.thumbnail_widgets)
        thumb = self.studio.thumbnail.snapshot()
        if text is not None and thumb is not None and text != thumb.visual_prompt:
            self.studio.thumbnail.update_prompt(text)

    def _generate_scene(self, scene_id: str) -> None:
        prompt = self._editor_text(self.scene_widgets.get(scene_id))
        if self.studio.scenes.request_image(scene_id, prompt):
            self._refresh_scene_widget(scene_id)

    def _generate_thumbnail(self) -> None:
        prompt = self._editor_text(self.thumbnail_widgets)
        if self.studio.thumbnail.request_image(prompt):
            self._refresh_thumbnail_widget()

    def _copy_prompt(self, entity_id: str) -> None:
        if entity_id == THUMBNAIL_ID:
            widgets = self.thumbnail_widgets
        else:
            widgets = self.scene_widgets.get(entity_id)
        text = self._editor_text(widgets)
        if text is None:
            return
        self.clipboard_clear()
        self.clipboard_append(text)
        btn = widgets["btn_copy"]
        btn.configure(text="✅ Copied")
        btn.after(COPY_FEEDBACK_MS, lambda: btn.winfo_exists() and btn.configure(text="📋 Copy"))

    def _download_image(self, entity_id: str, stem: str) -> None:
        from tkinter.filedialog import asksaveasfilename

        if entity_id == THUMBNAIL_ID:
            entity = self.studio.thumbnail.snapshot()
        else:
            entity = self.studio.scenes.get(entity_id)
        if entity is None or not entity.image_data_url:
            return
        data_url = entity.image_data_url
        try:
            initial = default_filename(data_url, stem)
        except ValueError as e:
            self._on_log(f"❌ Cannot export {entity_id}: {e}")
            return
        path = asksaveasfilename(defaultextension=os.path.splitext(initial)[1], initialfile=initial)
        if not path:
            self._on_log("❌ Download cancelled")
            return
        try:
            size = save_data_url_to_path(data_url, path)
            self._on_log(f"💾 Saved {os.path.basename(path)} ({size:,} bytes)")
        except (OSError, ValueError) as e:
            self._on_log(f"❌ Save failed for {entity_id}: {e}")

    # ---------- Startup checks ----------
    def _post_init_checks(self) -> None:
        if not self.cfg.openrouter_api_key:
            self._on_log("OPENROUTER_API_KEY missing; prompt and image generation will fail.")

        def worker() -> None:
            self.probe_events.put(connectivity_probe())

        threading.Thread(target=worker, daemon=True).start()

    # ---------- Settings ----------
    def _open_settings(self) -> None:
        cfg = self.cfg
        win = ctk.CTkToplevel(self)
        win.title("Settings")
        win.geometry("420x380")

        lbl_api = ctk.CTkLabel(win, text="OPENROUTER_API_KEY")
        ent_api = ctk.CTkEntry(win, width=360, show="•")
        ent_api.insert(0, cfg.openrouter_api_key or "")
        lbl_dec = ctk.CTkLabel(win, text="Decompose Model")
        ent_dec = ctk.CTkEntry(win, width=360)
        ent_dec.insert(0, cfg.decompose_model)
        lbl_img = ctk.CTkLabel(win, text="Image Model")
        ent_img = ctk.CTkEntry(win, width=360)
        ent_img.insert(0, cfg.image_model)

        def save_settings() -> None:
            new_cfg = replace(
                cfg,
                openrouter_api_key=ent_api.get().strip(),
                decompose_model=ent_dec.get().strip() or cfg.decompose_model,
                image_model=ent_img.get().strip() or cfg.image_model,
            )
            if new_cfg == cfg:
                self._on_log("ℹ️ No configuration changes detected")
            self.cfg = new_cfg
            self.gateway.reload_config(new_cfg)
            self._on_log("✅ Settings applied (runtime). Use 'Save + Write .env' to persist.")
            win.destroy()

        def write_env_and_save() -> None:
            env_map = {
                "OPENROUTER_API_KEY": ent_api.get().strip(),
                "NARRATIVE_DECOMPOSE_MODEL": ent_dec.get().strip(),
                "NARRATIVE_IMAGE_MODEL": ent_img.get().strip(),
            }
            try:
                self._write_env(env_map)
                self._on_log("✅ .env file updated successfully")
            except OSError as e:
                self._on_log(f"❌ Failed to write .env: {e}")
            save_settings()

        def test_connectivity() -> None:
            api_key = ent_api.get().strip()
            ok_base, msg_base = connectivity_probe()
            msg = f"Base: {'OK' if ok_base else 'FAIL'} ({msg_base})"
            if api_key:
                ok_models, msg_models = openrouter_models_probe(api_key)
                ok_chat, msg_chat = openrouter_chat_probe(api_key, ent_dec.get().strip() or cfg.decompose_model)
                msg += f" | Models: {'OK' if ok_models else 'FAIL'} ({msg_models}) | Chat: {'OK' if ok_chat else 'FAIL'} ({msg_chat})"
            self._on_log(f"Connectivity: {msg}")
            lbl_test.configure(text=msg)

        btn_test = ctk.CTkButton(win, text="Test Connectivity", command=test_connectivity)
        lbl_test = ctk.CTkLabel(win, text="", anchor="w", wraplength=380)
        btn_save = ctk.CTkButton(win, text="Save", command=save_settings)
        btn_save_env = ctk.CTkButton(win, text="Save + Write .env", command=write_env_and_save)

        for lbl, ent in ((lbl_api, ent_api), (lbl_dec, ent_dec), (lbl_img, ent_img)):
            lbl.pack(padx=12, pady=(10, 4), anchor="w")
            ent.pack(padx=12, pady=(0, 4))
        btn_test.pack(padx=12, pady=(10, 4))
        lbl_test.pack(padx=12, pady=(0, 4), fill="x")
        btn_save.pack(padx=12, pady=(8, 4))
        btn_save_env.pack(padx=12, pady=(0, 12))

    # ---------- .env ----------
    def _write_env(self, kv: dict[str, str]) -> None:
        root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
        env_path = os.path.join(root_dir, ".env")
        existing: dict[str, str] = {}
        if os.path.exists(env_path):
            with open(env_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    k, v = line.split("=", 1)
                    existing[k.strip()] = v.strip()
        existing.update({k: v for k, v in kv.items() if v})
        with open(env_path, "w", encoding="utf-8") as f:
            f.writelines(f"{k}={v}\n" for k, v in existing.items())

    # ---------- Toasts ----------
    def show_toast(self, message: str, *, duration_ms: int = 2500) -> None:
        toast = ctk.CTkToplevel(self)
        toast.overrideredirect(True)
        toast.attributes("-topmost", True)
        ctk.CTkLabel(toast, text=message).pack(padx=12, pady=8)
        self.update_idletasks()
        x = self.winfo_x() + self.winfo_width() - toast.winfo_reqwidth() - 24
        y = self.winfo_y() + self.winfo_height() - toast.winfo_reqheight() - 48
        toast.geometry(f"+{x}+{y}")
        toast.after(duration_ms, toast.destroy)
