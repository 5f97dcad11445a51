"""
Image Toolbox - Desktop Application
Tkinter GUI with ttkbootstrap for combining images into a PDF, compressing
images, and converting images to JPG/PNG.

Workflow: Pick a tool → Add image(s) → Convert/Compress → Save
"""

import tkinter as tk
from tkinter import ttk, filedialog
from tkinterdnd2 import DND_FILES, TkinterDnD
from PIL import ImageTk
import ttkbootstrap as tb
from ttkbootstrap.constants import *
from dataclasses import replace
from pathlib import Path
import threading
import logging
from typing import Callable, Optional

from models import ImageItem, OutputFormat, SessionState, Settings
from processor import make_thumbnail, THUMBNAIL_SIZE
from workflows import (
    Outcome, Status, StatusKind, OutputFile,
    OperationTracker, PDF_EXPORT, COMPRESSION, CONVERSION,
    add_image_files, remove_image, clear_images, export_pdf,
    load_compression_image, compress_image,
    load_conversion_image, convert_image,
    check_output_writable, format_bytes, output_name
)

# Configure logging
logging.basicConfig(
    filename='app.log',
    level=logging.DEBUG,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configuration file path
CONFIG_PATH = Path("config.json")

# Status banner stays visible for this long
STATUS_TIMEOUT_MS = 5000

# Longest edge of the compressor and converter previews, in pixels
SLOT_PREVIEW_SIZE = 160

IMAGE_FILETYPES = [
    ("Images", "*.png *.jpg *.jpeg *.gif *.bmp *.tif *.tiff *.webp"),
    ("All files", "*.*"),
]

# Converter choices: label -> target format
CONVERTER_TARGETS = {
    "JPG": OutputFormat.JPEG,
    "PNG": OutputFormat.PNG,
    "JPEG": OutputFormat.JPEG,
}


class Application(TkinterDnD.Tk):
    """Main application window with one tab per tool."""

    BG_COLOR = "#F8FAFC"
    CARD_BG = "#FFFFFF"
    ACCENT_COLOR = "#2563EB"
    SUCCESS_COLOR = "#16A34A"
    ERROR_COLOR = "#DC2626"
    MUTED_COLOR = "#64748B"

    def __init__(self):
        super().__init__()
        self.style = tb.Style()
        self.style.theme_use("litera")

        self.title("Image Toolbox")
        self.geometry("820x640")
        self.minsize(640, 520)
        self.configure(bg=self.BG_COLOR)

        self.grid_rowconfigure(0, weight=1)
        self.grid_columnconfigure(0, weight=1)

        # Enable Drag and Drop
        self.drop_target_register(DND_FILES)
        self.dnd_bind('<<Drop>>', self._on_drop)

        # State
        self._settings = Settings.load_from_file(CONFIG_PATH)
        self._session = SessionState(batch_capacity=self._settings.batch_capacity)
        self._status_timer: Optional[str] = None
        self._operations = OperationTracker()
        # PhotoImages must stay referenced while Tk displays them
        self._thumbnails: dict[ImageItem, ImageTk.PhotoImage] = {}
        self._slot_previews: dict[str, Optional[ImageTk.PhotoImage]] = {}

        self._build_ui()

        self.protocol("WM_DELETE_WINDOW", self._on_close)
        logger.info("Application started")

    def _build_ui(self) -> None:
        """Build the tool tabs and the status bar."""
        self._notebook = ttk.Notebook(self, bootstyle="primary")
        self._notebook.grid(row=0, column=0, sticky="nsew", padx=20, pady=(15, 10))

        self._pdf_tab = ttk.Frame(self._notebook, padding=15)
        self._compressor_tab = ttk.Frame(self._notebook, padding=15)
        self._converter_tab = ttk.Frame(self._notebook, padding=15)

        self._notebook.add(self._pdf_tab, text="Image to PDF")
        self._notebook.add(self._compressor_tab, text="Image Compressor")
        self._notebook.add(self._converter_tab, text="Image Converter")
        self._notebook.bind("<<NotebookTabChanged>>", lambda e: self._hide_status())

        self._build_pdf_tab(self._pdf_tab)
        self._build_compressor_tab(self._compressor_tab)
        self._build_converter_tab(self._converter_tab)
        self._build_status_bar()

    # --- Image to PDF tab ---

    def _build_pdf_tab(self, parent) -> None:
        parent.grid_rowconfigure(1, weight=1)
        parent.grid_columnconfigure(0, weight=1)

        toolbar = ttk.Frame(parent)
        toolbar.grid(row=0, column=0, sticky="ew", pady=(0, 10))

        ttk.Button(
            toolbar,
            text="📂 Add Images",
            bootstyle="secondary-outline",
            command=self._choose_pdf_images
        ).pack(side=LEFT, padx=(0, 5))

        self._remove_btn = ttk.Button(
            toolbar,
            text="🗑 Remove Selected",
            bootstyle="danger-outline",
            command=self._remove_selected,
            state=DISABLED
        )
        self._remove_btn.pack(side=LEFT, padx=5)

        self._clear_pdf_btn = ttk.Button(
            toolbar,
            text="Clear All",
            bootstyle="secondary-outline",
            command=self._clear_pdf_images,
            state=DISABLED
        )
        self._clear_pdf_btn.pack(side=LEFT, padx=5)

        self._count_label = ttk.Label(toolbar, text="", foreground=self.MUTED_COLOR)
        self._count_label.pack(side=RIGHT)

        list_frame = ttk.Frame(parent)
        list_frame.grid(row=1, column=0, sticky="nsew")

        self._placeholder_label = ttk.Label(
            list_frame,
            text="No images added yet. Drop images here or click Add Images.",
            font=("", 11),
            foreground="#94A3B8"
        )

        self.style.configure(
            "Thumbs.Treeview",
            rowheight=THUMBNAIL_SIZE + 8,
            font=("", 10),
            background=self.CARD_BG,
            fieldbackground=self.CARD_BG
        )
        self.style.map("Thumbs.Treeview", background=[("selected", self.ACCENT_COLOR)], foreground=[("selected", "white")])
        self._image_tree = ttk.Treeview(
            list_frame,
            show="tree",
            selectmode="browse",
            style="Thumbs.Treeview"
        )
        self._image_tree.bind("<<TreeviewSelect>>", lambda e: self._sync_pdf_buttons())
        self._image_tree.bind("<Delete>", lambda e: self._remove_selected())

        self._list_scrollbar = ttk.Scrollbar(list_frame, orient=VERTICAL, command=self._image_tree.yview)
        self._image_tree.config(yscrollcommand=self._list_scrollbar.set)

        bottom = ttk.Frame(parent)
        bottom.grid(row=2, column=0, sticky="ew", pady=(10, 0))

        self._pdf_name_var = tk.StringVar()
        ttk.Label(bottom, text="File name:").pack(side=LEFT)
        ttk.Entry(bottom, textvariable=self._pdf_name_var, width=30).pack(side=LEFT, padx=5)
        ttk.Label(bottom, text=".pdf", foreground=self.MUTED_COLOR).pack(side=LEFT)

        self._convert_pdf_btn = ttk.Button(
            bottom,
            text="Convert to PDF",
            bootstyle="primary",
            command=self._start_pdf_export,
            state=DISABLED
        )
        self._convert_pdf_btn.pack(side=RIGHT)

        self._refresh_image_list()

    def _choose_pdf_images(self) -> None:
        paths = filedialog.askopenfilenames(title="Add Images", filetypes=IMAGE_FILETYPES)
        if paths:
            self._add_pdf_images(list(paths))

    def _add_pdf_images(self, paths: list[str]) -> None:
        outcome = add_image_files(self._session, paths)
        self._refresh_image_list()
        self._show_status(outcome.status)

    def _remove_selected(self) -> None:
        selection = self._image_tree.selection()
        if not selection:
            return
        outcome = remove_image(self._session, self._image_tree.index(selection[0]))
        self._refresh_image_list()
        self._show_status(outcome.status)

    def _clear_pdf_images(self) -> None:
        outcome = clear_images(self._session)
        self._pdf_name_var.set("")
        self._refresh_image_list()
        self._show_status(outcome.status)

    def _refresh_image_list(self) -> None:
        """Redraw the batch list in upload order."""
        batch = self._session.get_batch()
        self._image_tree.delete(*self._image_tree.get_children())
        current = set(batch)
        self._thumbnails = {item: photo for item, photo in self._thumbnails.items() if item in current}

        if not batch:
            self._image_tree.pack_forget()
            self._list_scrollbar.pack_forget()
            self._placeholder_label.pack(expand=True, pady=30)
        else:
            self._placeholder_label.pack_forget()
            self._image_tree.pack(side=LEFT, fill=BOTH, expand=True)
            self._list_scrollbar.pack(side=RIGHT, fill=Y)
            for i, item in enumerate(batch):
                options = {"text": f"  {i + 1}. {item.name}  ({format_bytes(item.size_bytes)})"}
                thumbnail = self._thumbnail_for(item)
                if thumbnail is not None:
                    options["image"] = thumbnail
                self._image_tree.insert("", tk.END, **options)

        self._count_label.config(text=f"{len(batch)} / {batch.capacity} images")
        self._sync_pdf_buttons()

    def _thumbnail_for(self, item: ImageItem) -> Optional[ImageTk.PhotoImage]:
        if item not in self._thumbnails:
            preview = make_thumbnail(item)
            if preview is None:
                return None
            self._thumbnails[item] = ImageTk.PhotoImage(preview)
        return self._thumbnails[item]

    def _sync_pdf_buttons(self) -> None:
        has_images = bool(self._session.get_batch())
        has_selection = bool(self._image_tree.selection())
        self._clear_pdf_btn.config(state=NORMAL if has_images else DISABLED)
        self._remove_btn.config(state=NORMAL if has_selection else DISABLED)
        ready = self._operations.can_start(PDF_EXPORT, has_images)
        self._convert_pdf_btn.config(state=NORMAL if ready else DISABLED)

    def _start_pdf_export(self) -> None:
        snapshot = self._session.get_batch().snapshot()
        file_name = self._pdf_name_var.get()
        self._run_in_background(
            PDF_EXPORT,
            self._convert_pdf_btn,
            "Converting...",
            lambda: "Convert to PDF",
            lambda: export_pdf(self._session, self._settings, file_name, items=snapshot),
            lambda outcome: self._finish_with_output(outcome, [("PDF files", "*.pdf")])
        )

    # --- Compressor tab ---

    def _build_compressor_tab(self, parent) -> None:
        parent.grid_columnconfigure(0, weight=1)

        ttk.Button(
            parent,
            text="📂 Select Image",
            bootstyle="secondary-outline",
            command=self._choose_compression_image
        ).grid(row=0, column=0, sticky="w")

        self._compressor_file_label = ttk.Label(
            parent,
            text="Image selected will appear here.",
            font=("", 10, "italic"),
            foreground=self.MUTED_COLOR
        )
        self._compressor_file_label.grid(row=1, column=0, sticky="w", pady=(10, 15))
        self._compressor_preview = ttk.Label(parent)
        self._compressor_preview.grid(row=2, column=0, sticky="w", pady=(0, 15))

        quality_frame = ttk.Frame(parent)
        quality_frame.grid(row=3, column=0, sticky="ew")
        ttk.Label(quality_frame, text="Quality:").pack(side=LEFT)

        self._quality_var = tk.IntVar(value=round(self._settings.compression_quality * 100))
        ttk.Scale(
            quality_frame,
            from_=0,
            to=100,
            variable=self._quality_var,
            command=lambda v: self._on_quality_change(),
            length=300
        ).pack(side=LEFT, padx=10)
        self._quality_label = ttk.Label(quality_frame, text=f"{self._quality_var.get()}%", width=5)
        self._quality_label.pack(side=LEFT)

        sizes = ttk.Frame(parent)
        sizes.grid(row=4, column=0, sticky="w", pady=15)
        ttk.Label(sizes, text="Original size:").grid(row=0, column=0, sticky="w")
        self._original_size_label = ttk.Label(sizes, text="-- KB")
        self._original_size_label.grid(row=0, column=1, sticky="w", padx=10)
        ttk.Label(sizes, text="New size:").grid(row=1, column=0, sticky="w")
        self._new_size_label = ttk.Label(sizes, text="-- KB")
        self._new_size_label.grid(row=1, column=1, sticky="w", padx=10)

        bottom = ttk.Frame(parent)
        bottom.grid(row=5, column=0, sticky="ew", pady=(10, 0))
        self._compressor_name_var = tk.StringVar()
        ttk.Label(bottom, text="File name:").pack(side=LEFT)
        ttk.Entry(bottom, textvariable=self._compressor_name_var, width=30).pack(side=LEFT, padx=5)
        ttk.Label(bottom, text=".jpg", foreground=self.MUTED_COLOR).pack(side=LEFT)

        self._compress_btn = ttk.Button(
            bottom,
            text="Compress & Download",
            bootstyle="primary",
            command=self._start_compression,
            state=DISABLED
        )
        self._compress_btn.pack(side=RIGHT)

    def _choose_compression_image(self) -> None:
        path = filedialog.askopenfilename(title="Select Image", filetypes=IMAGE_FILETYPES)
        if path:
            self._load_single_image(path, self._set_compression_image)

    def _set_compression_image(self, item: Optional[ImageItem]) -> Status:
        status = load_compression_image(self._session, item).status
        if item is None:
            self._compressor_file_label.config(text="Image selected will appear here.")
            self._original_size_label.config(text="-- KB")
            self._new_size_label.config(text="-- KB")
        else:
            self._compressor_file_label.config(text=item.name)
            self._original_size_label.config(text=format_bytes(item.size_bytes))
            self._new_size_label.config(text="N/A")
        self._show_slot_preview(self._compressor_preview, COMPRESSION, item)
        self._sync_compress_button()
        return status

    def _sync_compress_button(self) -> None:
        has_image = self._session.get_compression_image() is not None
        ready = self._operations.can_start(COMPRESSION, has_image)
        self._compress_btn.config(state=NORMAL if ready else DISABLED)

    def _on_quality_change(self) -> None:
        self._quality_label.config(text=f"{self._quality_var.get()}%")
        if self._session.get_compression_image() is not None:
            self._new_size_label.config(text="N/A")

    def _start_compression(self) -> None:
        image = self._session.get_compression_image()
        quality = self._quality_var.get() / 100
        file_name = self._compressor_name_var.get()
        self._run_in_background(
            COMPRESSION,
            self._compress_btn,
            "Compressing...",
            lambda: "Compress & Download",
            lambda: compress_image(self._session, self._settings, quality, file_name),
            lambda outcome: self._on_compressed(outcome, image)
        )

    def _on_compressed(self, outcome: Outcome, image: Optional[ImageItem]) -> None:
        # The slot may have been replaced while the job ran
        if outcome.ok and self._session.get_compression_image() is image:
            self._new_size_label.config(text=format_bytes(outcome.output.size_bytes))
        self._finish_with_output(outcome, [("JPEG images", "*.jpg")])

    # --- Converter tab ---

    def _build_converter_tab(self, parent) -> None:
        parent.grid_columnconfigure(0, weight=1)

        self._converter_title = ttk.Label(parent, text="Convert Image to JPG", font=("", 12, "bold"))
        self._converter_title.grid(row=0, column=0, sticky="w", pady=(0, 10))

        formats = ttk.Frame(parent)
        formats.grid(row=1, column=0, sticky="w", pady=(0, 10))
        self._target_var = tk.StringVar(value="JPG")
        for label in CONVERTER_TARGETS:
            ttk.Radiobutton(
                formats,
                text=label,
                value=label,
                variable=self._target_var,
                bootstyle="toolbutton",
                command=self._on_target_change
            ).pack(side=LEFT, padx=(0, 5))

        ttk.Button(
            parent,
            text="📂 Select Image",
            bootstyle="secondary-outline",
            command=self._choose_conversion_image
        ).grid(row=2, column=0, sticky="w")

        self._converter_file_label = ttk.Label(
            parent,
            text="Image selected will appear here.",
            font=("", 10, "italic"),
            foreground=self.MUTED_COLOR
        )
        self._converter_file_label.grid(row=3, column=0, sticky="w", pady=(10, 15))
        self._converter_preview = ttk.Label(parent)
        self._converter_preview.grid(row=4, column=0, sticky="w", pady=(0, 15))

        bottom = ttk.Frame(parent)
        bottom.grid(row=5, column=0, sticky="ew", pady=(10, 0))
        self._converter_name_var = tk.StringVar()
        ttk.Label(bottom, text="File name:").pack(side=LEFT)
        ttk.Entry(bottom, textvariable=self._converter_name_var, width=30).pack(side=LEFT, padx=5)
        self._converter_ext_label = ttk.Label(bottom, text=".jpg", foreground=self.MUTED_COLOR)
        self._converter_ext_label.pack(side=LEFT)

        self._convert_btn = ttk.Button(
            bottom,
            text="Convert to JPG & Download",
            bootstyle="primary",
            command=self._start_conversion,
            state=DISABLED
        )
        self._convert_btn.pack(side=RIGHT)

    def _target_format(self) -> OutputFormat:
        return CONVERTER_TARGETS[self._target_var.get()]

    def _convert_button_text(self) -> str:
        return f"Convert to {self._target_var.get()} & Download"

    def _on_target_change(self) -> None:
        label = self._target_var.get()
        self._converter_title.config(text=f"Convert Image to {label}")
        if not self._operations.is_running(CONVERSION):
            self._convert_btn.config(text=self._convert_button_text())
        self._converter_ext_label.config(text=self._target_format().extension)
        self._hide_status()

    def _choose_conversion_image(self) -> None:
        path = filedialog.askopenfilename(title="Select Image", filetypes=IMAGE_FILETYPES)
        if path:
            self._load_single_image(path, self._set_conversion_image)

    def _set_conversion_image(self, item: Optional[ImageItem]) -> Status:
        status = load_conversion_image(self._session, item).status
        if item is None:
            self._converter_file_label.config(text="Image selected will appear here.")
        else:
            self._converter_file_label.config(text=item.name)
        self._show_slot_preview(self._converter_preview, CONVERSION, item)
        self._sync_convert_button()
        return status

    def _sync_convert_button(self) -> None:
        has_image = self._session.get_conversion_image() is not None
        ready = self._operations.can_start(CONVERSION, has_image)
        self._convert_btn.config(state=NORMAL if ready else DISABLED)

    def _start_conversion(self) -> None:
        target = self._target_format()
        label = self._target_var.get()
        file_name = self._converter_name_var.get()
        self._run_in_background(
            CONVERSION,
            self._convert_btn,
            "Converting...",
            self._convert_button_text,
            lambda: convert_image(self._session, self._settings, target, file_name),
            lambda outcome: self._finish_with_output(
                outcome, [(f"{label} images", f"*{target.extension}")]
            )
        )

    # --- Shared helpers ---

    def _show_slot_preview(self, widget: ttk.Label, slot: str, item: Optional[ImageItem]) -> None:
        """Show a preview of the image in a single-image slot, or nothing."""
        preview = make_thumbnail(item, SLOT_PREVIEW_SIZE) if item is not None else None
        photo = ImageTk.PhotoImage(preview) if preview is not None else None
        self._slot_previews[slot] = photo
        widget.config(image=photo if photo is not None else "")

    def _sync_action_buttons(self) -> None:
        self._sync_pdf_buttons()
        self._sync_compress_button()
        self._sync_convert_button()

    def _load_single_image(self, path: str, setter: Callable[[Optional[ImageItem]], Status]) -> None:
        """Read one file into a single-image slot."""
        try:
            item = ImageItem.from_path(path)
        except OSError as e:
            logger.exception(f"Failed to read image: {path}")
            self._show_status(Status.error(f"Failed to read {Path(path).name}: {e.strerror or e}"))
            return
        self._show_status(setter(item))

    def _run_in_background(
        self,
        operation: str,
        button: ttk.Button,
        busy_text: str,
        idle_text: Callable[[], str],
        work: Callable[[], Outcome],
        on_done: Callable[[Outcome], None]
    ) -> None:
        """
        Run one operation on a worker thread with its button disabled.
        The button stays disabled until the operation finishes, whatever
        else changes in its tab meanwhile.
        """
        if not self._operations.begin(operation):
            return
        button.config(text=busy_text, state=DISABLED)

        def target() -> None:
            try:
                outcome = work()
            except Exception:
                logger.exception("Operation failed")
                outcome = Outcome(Status.error("An unexpected error occurred. See app.log for details."))
            self.after(0, lambda: finish(outcome))

        def finish(outcome: Outcome) -> None:
            self._operations.end(operation)
            button.config(text=idle_text())
            self._sync_action_buttons()
            on_done(outcome)

        threading.Thread(target=target, daemon=True).start()

    def _finish_with_output(self, outcome: Outcome, filetypes: list[tuple[str, str]]) -> None:
        """Offer the produced file for saving and report the operation status."""
        if not outcome.ok or outcome.output is None:
            self._show_status(outcome.status)
            return

        saved = self._save_output(outcome.output, filetypes)
        if saved is None:
            self._show_status(Status.error("Save cancelled."))
        elif isinstance(saved, str):
            self._show_status(Status.error(saved))
        else:
            self._show_status(outcome.status)

    def _save_output(self, output: OutputFile, filetypes: list[tuple[str, str]]):
        """
        Ask where to save and write the file.
        Returns the written path, an error message, or None if cancelled.
        """
        extension = Path(output.name).suffix
        chosen = filedialog.asksaveasfilename(
            title="Save As",
            initialfile=output.name,
            defaultextension=extension,
            filetypes=filetypes
        )
        if not chosen:
            return None

        chosen_path = Path(chosen)
        final = replace(output, name=output_name(chosen_path.name, Path(output.name).stem, extension))
        writable, error = check_output_writable(chosen_path.parent / final.name)
        if not writable:
            return error
        try:
            return final.write(chosen_path.parent)
        except OSError as e:
            logger.exception("Failed to save output")
            return f"Failed to save {final.name}: {e}"

    def _on_drop(self, event) -> None:
        """Route dropped files to the active tool."""
        paths = [p for p in self.tk.splitlist(event.data) if Path(p).is_file()]
        if not paths:
            return

        current = self._notebook.index(self._notebook.select())
        if current == 0:
            self._add_pdf_images(paths)
        elif current == 1:
            self._load_single_image(paths[0], self._set_compression_image)
        else:
            self._load_single_image(paths[0], self._set_conversion_image)

    # --- Status bar ---

    def _build_status_bar(self) -> None:
        self._status_frame = ttk.Frame(self)
        self._status_frame.grid(row=1, column=0, sticky="ew", padx=20, pady=(0, 10))

        self._status_label = ttk.Label(self._status_frame, text="", font=("", 10))
        self._status_label.pack(side=LEFT, padx=10, pady=5)

    def _show_status(self, status: Status) -> None:
        """Show a status message; it hides itself after a few seconds."""
        color = self.SUCCESS_COLOR if status.kind == StatusKind.SUCCESS else self.ERROR_COLOR
        self._status_label.config(text=status.message, foreground=color)
        if self._status_timer is not None:
            self.after_cancel(self._status_timer)
        self._status_timer = self.after(STATUS_TIMEOUT_MS, self._hide_status)

    def _hide_status(self) -> None:
        if self._status_timer is not None:
            self.after_cancel(self._status_timer)
            self._status_timer = None
        self._status_label.config(text="")

    def _on_close(self) -> None:
        """Handle application close."""
        self._hide_status()
        logger.info("Application closed")
        self.destroy()


def main():
    """Main entry point."""
    app = Application()
    app.mainloop()


if __name__ == "__main__":
    main()
