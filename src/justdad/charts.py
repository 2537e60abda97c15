# src/justdad/charts.py

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

# Farben je Terminart, gleiche Reihenfolge wie VisitType
TYPE_COLORS = {
    'weekend': '#A0C4FF',
    'dinner': '#A0FFA0',
    'activity': '#FFD97D',
    'school': '#BDB2FF',
    'medical': '#9BF6FF',
    'emergency': '#FFADAD',
    'general': '#D0D0D0',
}


def create_pie_chart(values: list[int], labels: list[str], filename: str, colors: list[str] = None, subtitle: str = None):
    """
    Erstellt ein Tortendiagramm und speichert es als PNG.
    :param values: Liste der Werte (z.B. Anzahl Termine je Art).
    :param labels: Zugehörige Labels.
    :param filename: Pfad zur Ausgabedatei, z.B. "types.png".
    :param colors: (Optional) Liste von Farben für die Segmente.
    :param subtitle: (Optional) Text, der unter das Diagramm geschrieben wird.
    """
    fig, ax = plt.subplots()
    try:
        if sum(values) == 0:
            # Platzhalter-Bild, wenn keine Daten da sind
            ax.text(0.5, 0.5, "Keine Daten", ha="center", va="center", fontsize=14)
            ax.axis("off")
        else:
            ax.pie(values, labels=labels, autopct="%1.1f%%", colors=colors)
            ax.axis("equal")           # Kreis rund zeichnen
        if subtitle:
            fig.text(0.5, 0.02, subtitle, ha="center", va="bottom", fontsize=16, fontweight='bold')
        fig.savefig(filename, bbox_inches="tight")
    finally:
        plt.close(fig)
