import matplotlib.pyplot as plt
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg
import customtkinter as ctk

from assembler import format_instruction
from charts import STAGE_COLORS, forwarding_chart, pipeline_chart, stall_chart
from simulator import remarks
from stage_timing import Stage, PIPELINE_STAGES
from timeline import stage_occupancy

ctk.set_appearance_mode("System")
ctk.set_default_color_theme("blue")


def _clear(frame):
    for widget in frame.winfo_children():
        widget.destroy()


class PipelineViewer:
    def __init__(self, root, simulator):
        self.root = root
        root.title("Pipeline Hazard Simulator")
        root.geometry("1100x750")

        self.sim = simulator
        self.current_cycle = 0
        self.speed = 500
        self.playing = False
        self.log = []

        self._build_layout()
        self.refresh()

    def _heading(self, parent, text, top=10):
        ctk.CTkLabel(parent, text=text, font=ctk.CTkFont(size=16, weight="bold")).pack(pady=(top, 10))

    def _build_layout(self):
        cycles_panel = ctk.CTkFrame(self.root)
        cycles_panel.pack(side="left", fill="both", expand=True, padx=10, pady=10)
        self._heading(cycles_panel, "Cycle-by-Cycle Occupancy")
        self._build_stage_header(cycles_panel)
        self.table = ctk.CTkScrollableFrame(cycles_panel)
        self.table.pack(fill="both", expand=True, padx=5, pady=5)

        side = ctk.CTkScrollableFrame(self.root, width=380)
        side.pack(side="right", fill="y", padx=10, pady=10)
        self._heading(side, "Metrics")
        self.stats_frame = ctk.CTkFrame(side)
        self.stats_frame.pack(fill="x", pady=5)
        self._heading(side, "Playback", top=20)
        self._build_player(side)
        ctk.CTkButton(side, text="Charts", command=self.show_charts).pack(fill="x", pady=10)
        self._heading(side, "Stage Entry Cycles", top=20)
        self.entry_frame = ctk.CTkFrame(side)
        self.entry_frame.pack(fill="both", expand=True, pady=10)

    def _build_player(self, parent):
        player = ctk.CTkFrame(parent)
        player.pack(fill="x", pady=5)
        player.grid_columnconfigure(1, weight=1)

        self.forwarding_switch = ctk.CTkSwitch(player, text="Data Forwarding", command=self._toggle_forwarding)
        self.forwarding_switch.grid(row=0, column=0, columnspan=2, sticky="w", padx=5, pady=5)
        if self.sim.forwarding:
            self.forwarding_switch.select()

        ctk.CTkLabel(player, text="Delay (ms)").grid(row=1, column=0, sticky="w", padx=5)
        self.slider = ctk.CTkSlider(player, from_=100, to=2000, number_of_steps=19, command=self._set_speed)
        self.slider.set(self.speed)
        self.slider.grid(row=1, column=1, sticky="ew", padx=5)

        self.play_btn = ctk.CTkButton(player, text="▶ Play", command=self.toggle)
        self.next_btn = ctk.CTkButton(player, text="Step →", command=self.next)
        self.play_btn.grid(row=2, column=0, padx=5, pady=5)
        self.next_btn.grid(row=2, column=1, padx=5, pady=5)
        self.cycle_label = ctk.CTkLabel(player, text="")
        self.cycle_label.grid(row=3, column=0, columnspan=2, pady=5)

    def _build_stage_header(self, parent):
        frame = ctk.CTkFrame(parent)
        frame.pack(fill="x", padx=5, pady=(5, 0))
        headers = ["Cycle"] + [s.short_name for s in PIPELINE_STAGES] + ["Stall"]
        stages = [None] + list(PIPELINE_STAGES) + [Stage.STALL]
        for i, (h, stage) in enumerate(zip(headers, stages)):
            color = STAGE_COLORS[stage] if stage else "transparent"
            lbl = ctk.CTkLabel(frame, text=h, width=80, fg_color=color, corner_radius=6,
                               font=ctk.CTkFont(weight="bold"))
            lbl.grid(row=0, column=i, padx=2, pady=2)
            frame.grid_columnconfigure(i, weight=1)

    def refresh(self):
        self.log = stage_occupancy(self.sim.timeline)
        self.current_cycle = 0
        self._update_table()
        self._update_stats()
        self._update_entries()
        self.cycle_label.configure(text=f"Cycle: {1 if self.log else 0}/{len(self.log)}")

    def _update_table(self):
        _clear(self.table)
        for idx, occupancy in enumerate(self.log):
            row = ctk.CTkFrame(self.table)
            row.pack(fill="x", pady=1)
            bg = "#e0e0e0" if idx == self.current_cycle else None
            ctk.CTkLabel(row, text=str(idx + 1), width=80, fg_color=bg).grid(row=0, column=0, padx=2)
            for j, stage in enumerate(PIPELINE_STAGES + (Stage.STALL,)):
                val = ", ".join(f"I{i + 1}" for i in occupancy[stage]) or "--"
                color = STAGE_COLORS[stage] if val != "--" else "transparent"
                ctk.CTkLabel(row, text=val, width=80, fg_color=color, corner_radius=6).grid(row=0, column=j + 1, padx=2)
            for k in range(len(PIPELINE_STAGES) + 2):
                row.grid_columnconfigure(k, weight=1)

    def _statistics(self):
        m = self.sim.metrics
        stats = {
            'Total Cycles': m.total_cycles,
            'Ideal Cycles': m.ideal_cycles,
            'Instructions': m.instruction_count,
            'CPI': f"{m.cpi:.2f}",
            'Total Stalls': f"{m.total_stalls} ({m.stall_percentage:.1f}%)",
        }
        for hazard_type, cycles in m.stalls_by_type.items():
            stats[f"{hazard_type.value} Stalls"] = cycles
        if m.forwarding_enabled:
            stats['Forwarding Paths'] = m.forwarding_count
            stats['Cycles Saved'] = m.comparison.cycle_reduction
            stats['Speedup'] = f"{m.comparison.speedup:.2f}x"
        return stats

    def _update_stats(self):
        _clear(self.stats_frame)
        for r, (name, value) in enumerate(self._statistics().items()):
            ctk.CTkLabel(self.stats_frame, text=f"{name}:").grid(row=r, column=0, sticky="w", padx=5)
            ctk.CTkLabel(self.stats_frame, text=str(value)).grid(row=r, column=1, sticky="e", padx=5)

    def _update_entries(self):
        _clear(self.entry_frame)
        for entry in self.sim.timeline:
            f = ctk.CTkFrame(self.entry_frame)
            f.pack(fill="x", pady=1)
            cycles = " ".join(f"{s.short_name}:{entry.stage_entry_cycle(s)}" for s in PIPELINE_STAGES)
            ctk.CTkLabel(f, text=f"{entry.index + 1}. {format_instruction(entry.instruction)}",
                         anchor="w").grid(row=0, column=0, sticky="w", padx=5)
            ctk.CTkLabel(f, text=cycles).grid(row=0, column=1, sticky="e", padx=5)
            for r, note in enumerate(remarks(entry), start=1):
                ctk.CTkLabel(f, text=note, anchor="w").grid(row=r, column=0, columnspan=2, sticky="w", padx=15)

    def _toggle_forwarding(self):
        self._set_playing(False)
        self.sim.set_forwarding(self.forwarding_switch.get() == 1)
        self.refresh()

    def _set_speed(self, val):
        self.speed = int(val)

    def toggle(self):
        self._set_playing(not self.playing)
        if self.playing:
            self._animate()

    def _set_playing(self, playing):
        self.playing = playing
        self.play_btn.configure(text="⏸ Pause" if playing else "▶ Play")

    def _animate(self):
        if not self.playing:
            return
        if self.current_cycle >= len(self.log) - 1:
            self._set_playing(False)
            return
        self.next()
        self.root.after(self.speed, self._animate)

    def next(self):
        if self.current_cycle < len(self.log) - 1:
            self.current_cycle += 1
            self._update_table()
            self.cycle_label.configure(text=f"Cycle: {self.current_cycle + 1}/{len(self.log)}")

    def show_charts(self):
        win = ctk.CTkToplevel(self.root)
        win.title("Pipeline Charts")
        win.geometry("900x600")
        tabs = ctk.CTkTabview(win)
        tabs.pack(fill="both", expand=True, padx=10, pady=10)
        self._embed(tabs.add("Pipeline"), pipeline_chart(self.sim.timeline))
        self._embed(tabs.add("Stalls"), stall_chart(self.sim.metrics))
        self._embed(tabs.add("Forwarding"), forwarding_chart(self.sim.metrics))

    def _embed(self, parent, fig):
        canvas = FigureCanvasTkAgg(fig, parent)
        canvas.draw()
        canvas.get_tk_widget().pack(fill="both", expand=True)
        plt.close(fig)


def launch(simulator):
    app = ctk.CTk()
    PipelineViewer(app, simulator)
    app.mainloop()
